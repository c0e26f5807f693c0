"""Background listeners: resource event watches and log streams."""

from jobwarden.watchers.base import ListenerHandle
from jobwarden.watchers.events import EventWatcher, WatchHandle
from jobwarden.watchers.logs import LogHandle, LogStreamer

__all__ = [
    "EventWatcher",
    "ListenerHandle",
    "LogHandle",
    "LogStreamer",
    "WatchHandle",
]
