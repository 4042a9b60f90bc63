from .auto_retry import AutoRetry
from .cache_me import CacheMe
from .parse_mode import DefaultParseMode
from .throttle import ChatState, Limits, QueueFullPolicy, Settings, Throttle
from .trace import Trace, TraceSettings

__all__ = [
    "AutoRetry",
    "CacheMe",
    "ChatState",
    "DefaultParseMode",
    "Limits",
    "QueueFullPolicy",
    "Settings",
    "Throttle",
    "Trace",
    "TraceSettings",
]
