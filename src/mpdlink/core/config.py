"""Client settings and their persistence through QSettings."""

import logging
from dataclasses import dataclass, field
from typing import cast

from PySide6.QtCore import QSettings

from mpdlink.api.mpd.commands import DEFAULT_IDLE_SUBSYSTEMS
from mpdlink.api.mpd.connection import COMMAND_TIMEOUT, CONNECT_TIMEOUT
from mpdlink.api.mpd.dispatcher import IDLE_DELAY, NOIDLE_TIMEOUT
from mpdlink.core.idle_monitor import INTERPOLATION_INTERVAL, RESYNC_INTERVAL
from mpdlink.core.reconnect import (
    LONG_RECONNECT_DELAY,
    SHORT_RECONNECT_DELAY,
    SHORT_RECONNECT_TRIES,
)
from mpdlink.models.profile import DEFAULT_MPD_PORT, ServerProfile

logger = logging.getLogger(__name__)

# Settings keys
_KEY_SERVERS = "servers"
_KEY_LAST_SERVER = "last_server"

# Timeouts
_KEY_CONNECT_TIMEOUT = "timeouts/connect"
_KEY_COMMAND_TIMEOUT = "timeouts/command"
_KEY_NOIDLE_TIMEOUT = "timeouts/noidle"

# Idle handling
_KEY_IDLE_DELAY = "idle/delay"
_KEY_IDLE_SUBSYSTEMS = "idle/subsystems"
_KEY_RESYNC_INTERVAL = "idle/resync_interval"
_KEY_INTERPOLATION_INTERVAL = "idle/interpolation_interval"

# Reconnect
_KEY_RECONNECT_ENABLED = "reconnect/enabled"
_KEY_SHORT_RECONNECT_DELAY = "reconnect/short_delay"
_KEY_LONG_RECONNECT_DELAY = "reconnect/long_delay"
_KEY_SHORT_RECONNECT_TRIES = "reconnect/short_tries"


@dataclass(frozen=True)
class ClientSettings:
    """Tunables of the protocol core. Times are in seconds."""

    connect_timeout: float = CONNECT_TIMEOUT
    command_timeout: float = COMMAND_TIMEOUT
    noidle_timeout: float = NOIDLE_TIMEOUT
    idle_delay: float = IDLE_DELAY
    idle_subsystems: tuple[str, ...] = field(default=DEFAULT_IDLE_SUBSYSTEMS)
    resync_interval: float = RESYNC_INTERVAL
    interpolation_interval: float = INTERPOLATION_INTERVAL
    reconnect_enabled: bool = True
    short_reconnect_delay: float = SHORT_RECONNECT_DELAY
    long_reconnect_delay: float = LONG_RECONNECT_DELAY
    short_reconnect_tries: int = SHORT_RECONNECT_TRIES


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class ConfigManager:
    """Wrapper around QSettings for type-safe config access.

    QSettings stores config in platform-specific locations:
    - Windows: HKEY_CURRENT_USER\\Software\\mpdlink\\mpdlink
    - macOS: ~/Library/Preferences/com.mpdlink.mpdlink.plist
    - Linux: ~/.config/mpdlink/mpdlink.conf

    Example:
        config = ConfigManager()
        profile = config.get_auto_connect_profile()
        settings = config.get_client_settings()
    """

    def __init__(self, organization: str = "mpdlink", application: str = "mpdlink") -> None:
        """Initialize the config manager.

        Args:
            organization: Organization name for QSettings.
            application: Application name for QSettings.
        """
        self._settings = QSettings(organization, application)

    @property
    def settings(self) -> QSettings:
        """Return the underlying QSettings instance."""
        return self._settings

    # -- Server profiles -------------------------------------------------------

    def get_server_profiles(self) -> list[ServerProfile]:
        """Load saved server profiles.

        Returns:
            List of ServerProfile objects, or empty list if none saved.
        """
        raw_data = self._settings.value(_KEY_SERVERS, [], list)
        profiles: list[ServerProfile] = []

        if not isinstance(raw_data, list):
            return profiles

        data = cast(list[object], raw_data)
        for raw_item in data:
            if not isinstance(raw_item, dict):
                continue
            item = cast(dict[str, object], raw_item)
            try:
                id_val = item.get("id", "")
                name_val = item.get("name", "")
                host_val = item.get("host", "")
                port_val = item.get("port", DEFAULT_MPD_PORT)
                password_val = item.get("password", "")
                auto_val = item.get("auto_connect", False)
                profiles.append(
                    ServerProfile(
                        id=str(id_val) if id_val else "",
                        name=str(name_val) if name_val else "",
                        host=str(host_val) if host_val else "",
                        port=int(port_val) if isinstance(port_val, int) else DEFAULT_MPD_PORT,
                        password=str(password_val) if password_val else "",
                        auto_connect=bool(auto_val),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping invalid server profile entry: %s", e)
                continue

        return profiles

    def save_server_profiles(self, profiles: list[ServerProfile]) -> None:
        """Persist server profiles.

        Args:
            profiles: List of ServerProfile objects to save.
        """
        data = [
            {
                "id": p.id,
                "name": p.name,
                "host": p.host,
                "port": p.port,
                "password": p.password,
                "auto_connect": p.auto_connect,
            }
            for p in profiles
        ]
        self._settings.setValue(_KEY_SERVERS, data)

    def add_server_profile(self, profile: ServerProfile) -> None:
        """Add a server profile, replacing one with the same ID."""
        profiles = [p for p in self.get_server_profiles() if p.id != profile.id]
        profiles.append(profile)
        self.save_server_profiles(profiles)

    def remove_server_profile(self, profile_id: str) -> bool:
        """Remove a server profile by ID.

        Returns:
            True if profile was removed, False if not found.
        """
        profiles = self.get_server_profiles()
        remaining = [p for p in profiles if p.id != profile_id]
        if len(remaining) < len(profiles):
            self.save_server_profiles(remaining)
            return True
        return False

    def get_profile(self, profile_id: str) -> ServerProfile | None:
        """Get a server profile by ID, or None."""
        for profile in self.get_server_profiles():
            if profile.id == profile_id:
                return profile
        return None

    def get_last_server_id(self) -> str | None:
        """Get the last connected server ID, or None."""
        value = self._settings.value(_KEY_LAST_SERVER, None, str)
        return str(value) if value else None

    def set_last_server_id(self, server_id: str) -> None:
        """Set the last connected server ID."""
        self._settings.setValue(_KEY_LAST_SERVER, server_id)

    def get_auto_connect_profile(self) -> ServerProfile | None:
        """Get the profile marked for auto-connect.

        If multiple profiles have auto_connect=True, returns the first one.
        """
        for profile in self.get_server_profiles():
            if profile.auto_connect:
                return profile
        return None

    # -- Client settings -------------------------------------------------------

    def _get_float(self, key: str, default: float, low: float, high: float) -> float:
        value = self._settings.value(key, default)
        try:
            return _clamp(float(cast(float, value)), low, high)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid setting %s=%r", key, value)
            return default

    def _get_int(self, key: str, default: int, low: int, high: int) -> int:
        value = self._settings.value(key, default)
        try:
            return int(_clamp(int(cast(int, value)), low, high))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid setting %s=%r", key, value)
            return default

    def get_idle_subsystems(self) -> tuple[str, ...]:
        """Return the idle subsystems; the defaults if none are saved."""
        value = self._settings.value(_KEY_IDLE_SUBSYSTEMS, "", str)
        names = [name.strip() for name in str(value or "").split(",") if name.strip()]
        return tuple(names) or DEFAULT_IDLE_SUBSYSTEMS

    def get_client_settings(self) -> ClientSettings:
        """Load client settings, clamping every value to a sane range."""
        defaults = ClientSettings()
        enabled = self._settings.value(_KEY_RECONNECT_ENABLED, defaults.reconnect_enabled, bool)
        return ClientSettings(
            connect_timeout=self._get_float(
                _KEY_CONNECT_TIMEOUT, defaults.connect_timeout, 1.0, 60.0
            ),
            command_timeout=self._get_float(
                _KEY_COMMAND_TIMEOUT, defaults.command_timeout, 1.0, 120.0
            ),
            noidle_timeout=self._get_float(
                _KEY_NOIDLE_TIMEOUT, defaults.noidle_timeout, 1.0, 60.0
            ),
            idle_delay=self._get_float(_KEY_IDLE_DELAY, defaults.idle_delay, 0.0, 10.0),
            idle_subsystems=self.get_idle_subsystems(),
            resync_interval=self._get_float(
                _KEY_RESYNC_INTERVAL, defaults.resync_interval, 5.0, 600.0
            ),
            interpolation_interval=self._get_float(
                _KEY_INTERPOLATION_INTERVAL, defaults.interpolation_interval, 0.1, 10.0
            ),
            reconnect_enabled=bool(enabled),
            short_reconnect_delay=self._get_float(
                _KEY_SHORT_RECONNECT_DELAY, defaults.short_reconnect_delay, 1.0, 600.0
            ),
            long_reconnect_delay=self._get_float(
                _KEY_LONG_RECONNECT_DELAY, defaults.long_reconnect_delay, 1.0, 3600.0
            ),
            short_reconnect_tries=self._get_int(
                _KEY_SHORT_RECONNECT_TRIES, defaults.short_reconnect_tries, 0, 100
            ),
        )

    def save_client_settings(self, settings: ClientSettings) -> None:
        """Persist client settings."""
        self._settings.setValue(_KEY_CONNECT_TIMEOUT, settings.connect_timeout)
        self._settings.setValue(_KEY_COMMAND_TIMEOUT, settings.command_timeout)
        self._settings.setValue(_KEY_NOIDLE_TIMEOUT, settings.noidle_timeout)
        self._settings.setValue(_KEY_IDLE_DELAY, settings.idle_delay)
        self._settings.setValue(_KEY_IDLE_SUBSYSTEMS, ",".join(settings.idle_subsystems))
        self._settings.setValue(_KEY_RESYNC_INTERVAL, settings.resync_interval)
        self._settings.setValue(_KEY_INTERPOLATION_INTERVAL, settings.interpolation_interval)
        self._settings.setValue(_KEY_RECONNECT_ENABLED, settings.reconnect_enabled)
        self._settings.setValue(_KEY_SHORT_RECONNECT_DELAY, settings.short_reconnect_delay)
        self._settings.setValue(_KEY_LONG_RECONNECT_DELAY, settings.long_reconnect_delay)
        self._settings.setValue(_KEY_SHORT_RECONNECT_TRIES, settings.short_reconnect_tries)

    # -- General settings ------------------------------------------------------

    def clear(self) -> None:
        """Clear all settings (useful for testing or reset)."""
        self._settings.clear()

    def sync(self) -> None:
        """Force settings to be written to disk."""
        self._settings.sync()
