from .dialogue import Case, Dialogue, Enter, case, enter
from .storage import InMemStorage, Storage, TraceStorage

__all__ = [
    "Case",
    "Dialogue",
    "Enter",
    "InMemStorage",
    "Storage",
    "TraceStorage",
    "case",
    "enter",
]
