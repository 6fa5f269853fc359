"""Core client logic layered on the MPD protocol.

Classes:
    MpdClient: Facade owning connection, dispatcher, monitor and supervisor.
    IdleMonitor: Tracks player state while the connection idles.
    ReconnectSupervisor: Backoff state machine for reconnects.
    ListenerRelay: Delivery thread for listener callbacks.
    MpdWorker: QThread bridge emitting Qt signals.
    ConfigManager: QSettings wrapper for configuration.
"""

from mpdlink.core.client import MpdClient
from mpdlink.core.config import ClientSettings, ConfigManager
from mpdlink.core.idle_monitor import IdleMonitor, MonitorState
from mpdlink.core.listeners import ConnectionListener, ListenerRelay, StatusListener
from mpdlink.core.reconnect import ReconnectState, ReconnectSupervisor
from mpdlink.core.worker import MpdWorker

__all__ = [
    "ClientSettings",
    "ConfigManager",
    "ConnectionListener",
    "IdleMonitor",
    "ListenerRelay",
    "MonitorState",
    "MpdClient",
    "MpdWorker",
    "ReconnectState",
    "ReconnectSupervisor",
    "StatusListener",
]
