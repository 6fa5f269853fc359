"""Tests for ServerProfile model."""

import pytest

from mpdlink.models.profile import ServerProfile, create_profile


class TestServerProfile:
    """Test ServerProfile dataclass."""

    def test_creation_with_defaults(self) -> None:
        """Test profile creation with default port, password and auto_connect."""
        profile = ServerProfile(id="test-1", name="Test Server", host="192.168.1.100")
        assert profile.port == 6600
        assert profile.password == ""
        assert profile.auto_connect is False
        assert profile.address == "192.168.1.100:6600"

    def test_with_auto_connect(self) -> None:
        """Test creating a copy with different auto_connect value."""
        profile = ServerProfile(id="test-1", name="Test", host="192.168.1.100")
        updated = profile.with_auto_connect(True)

        assert updated.auto_connect is True
        assert updated.id == profile.id
        # Original unchanged (frozen)
        assert profile.auto_connect is False

    def test_with_password(self) -> None:
        """Test creating a copy with a password."""
        profile = ServerProfile(id="test-1", name="Test", host="mpd.local")
        assert profile.with_password("secret").password == "secret"
        assert profile.password == ""

    def test_is_immutable(self) -> None:
        """Test that ServerProfile is frozen."""
        profile = ServerProfile(id="test-1", name="Test", host="mpd.local")
        with pytest.raises(AttributeError):
            profile.host = "other"  # type: ignore[misc]


class TestCreateProfile:
    """Test create_profile factory function."""

    def test_id_from_host_and_port(self) -> None:
        """Test that the ID is stable for host:port and ignores the name."""
        a = create_profile("Living Room", "192.168.1.100")
        b = create_profile("Renamed", "192.168.1.100")
        c = create_profile("Living Room", "192.168.1.100", port=6601)

        assert a.id == b.id
        assert a.id != c.id
        assert len(a.id) == 8

    def test_all_fields(self) -> None:
        """Test that every argument is stored."""
        profile = create_profile("Den", "mpd.local", 6602, "pw", auto_connect=True)
        assert (profile.name, profile.host, profile.port) == ("Den", "mpd.local", 6602)
        assert profile.password == "pw"
        assert profile.auto_connect is True
