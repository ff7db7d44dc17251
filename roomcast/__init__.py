"""
roomcast - in-process WebSocket room broadcast server

Clients connect over WebSocket, join and leave named rooms, and relay
messages to the other members of a room.
"""

__version__ = "0.1.0"

from .config import Settings
from .config import SlowConsumerPolicy
from .config import settings
from .logger import logger

__all__ = [
    "Settings",
    "SlowConsumerPolicy",
    "__version__",
    "logger",
    "settings",
]
