from core.clock import Clock, FixedClock, SystemClock
from core.commands import CommandHandler
from core.store import ReportStore
from core.tracker import Tracker
from core.watcher import BatchChannel, PeriodicWatcher, Watcher

__all__ = [
    "BatchChannel",
    "Clock",
    "CommandHandler",
    "FixedClock",
    "PeriodicWatcher",
    "ReportStore",
    "SystemClock",
    "Tracker",
    "Watcher",
]
