"""Data models for saved MPD connection settings."""

from mpdlink.models.profile import ServerProfile, create_profile

__all__ = ["ServerProfile", "create_profile"]
