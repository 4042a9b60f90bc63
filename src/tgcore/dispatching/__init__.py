from . import filters
from .di import DependencyMap, inject
from .dialogue import Dialogue, InMemStorage, Storage, TraceStorage, case, enter
from .dispatcher import Dispatcher
from .distribution import by_user, default_distribution_function
from .error_handlers import ErrorHandler, IgnoringErrorHandler, LoggingErrorHandler
from .handler import (
    Branch,
    Break,
    Chain,
    Continue,
    Description,
    Endpoint,
    Handler,
    endpoint,
    entry,
    filter,
    filter_async,
    filter_map,
    inspect,
    map,
)

__all__ = [
    "Branch",
    "Break",
    "Chain",
    "Continue",
    "DependencyMap",
    "Description",
    "Dialogue",
    "Dispatcher",
    "Endpoint",
    "ErrorHandler",
    "Handler",
    "IgnoringErrorHandler",
    "InMemStorage",
    "LoggingErrorHandler",
    "Storage",
    "TraceStorage",
    "by_user",
    "case",
    "default_distribution_function",
    "endpoint",
    "enter",
    "entry",
    "filter",
    "filter_async",
    "filter_map",
    "filters",
    "inject",
    "inspect",
    "map",
]
