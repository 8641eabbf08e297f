"""
Service Settings

Environment-based configuration for the session authority.

Environment variables:
    CALLSYNC_TICK_INTERVAL: Timer sweep cadence in seconds (default 1.0)
    CALLSYNC_GRACE_PERIOD: Seconds a terminated session stays reachable (default 5.0)
    CALLSYNC_WARNING_THRESHOLD: Remaining seconds that trigger the warning (default 120)
    CALLSYNC_DEFAULT_DURATION: Call length in minutes when none is given (default 30)
    CALLSYNC_QUEUE_SIZE: Outbound queue depth per connection (default 200)
    CALLSYNC_LOG_LEVEL: Logging level (default INFO)
    CALLSYNC_STUN_URLS: Comma-separated STUN URLs
    TURN_URL: host:port of the TURN relay (optional)
    TURN_USERNAME / TURN_PASSWORD: TURN credentials

Storage variables are documented in callsync.storage.factory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

from callsync.storage.factory import StorageSettings
from callsync.storage.factory import settings_from_env as storage_settings_from_env

DEFAULT_STUN_URLS = (
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
    "stun:stun2.l.google.com:19302",
)


@dataclass
class IceSettings:
    """
    ICE server configuration handed to clients.

    Attributes:
        stun_urls: Public STUN servers
        turn_url: TURN relay host:port, None to omit TURN entries
        turn_username: TURN username
        turn_password: TURN credential
    """
    stun_urls: tuple[str, ...] = DEFAULT_STUN_URLS
    turn_url: str | None = None
    turn_username: str = "user"
    turn_password: str = "pass"

    def ice_servers(self) -> list[dict[str, Any]]:
        """RTCPeerConnection iceServers list."""
        servers: list[dict[str, Any]] = [{"urls": url} for url in self.stun_urls]
        if self.turn_url:
            creds = {"username": self.turn_username, "credential": self.turn_password}
            servers.append({"urls": f"turn:{self.turn_url}?transport=udp", **creds})
            servers.append({"urls": f"turn:{self.turn_url}?transport=tcp", **creds})
        return servers


@dataclass
class ServiceSettings:
    """
    Configuration for the session authority.

    Attributes:
        tick_interval_seconds: Timer sweep cadence
        grace_period_seconds: Delay between termination and purge
        warning_threshold_seconds: Remaining time that triggers the warning
        default_duration_minutes: Duration used when a request omits it
        queue_size: Outbound queue depth per connection
        log_level: Root logging level
        ice: ICE server configuration
        storage: Persistence sink configuration
    """
    tick_interval_seconds: float = 1.0
    grace_period_seconds: float = 5.0
    warning_threshold_seconds: int = 120
    default_duration_minutes: int = 30
    queue_size: int = 200
    log_level: str = "INFO"
    ice: IceSettings = field(default_factory=IceSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)


def _stun_urls_from_env() -> tuple[str, ...]:
    raw = os.getenv("CALLSYNC_STUN_URLS")
    if not raw:
        return DEFAULT_STUN_URLS
    return tuple(url.strip() for url in raw.split(",") if url.strip())


def settings_from_env() -> ServiceSettings:
    """Create ServiceSettings from environment variables."""
    return ServiceSettings(
        tick_interval_seconds=float(os.getenv("CALLSYNC_TICK_INTERVAL", "1.0")),
        grace_period_seconds=float(os.getenv("CALLSYNC_GRACE_PERIOD", "5.0")),
        warning_threshold_seconds=int(os.getenv("CALLSYNC_WARNING_THRESHOLD", "120")),
        default_duration_minutes=int(os.getenv("CALLSYNC_DEFAULT_DURATION", "30")),
        queue_size=int(os.getenv("CALLSYNC_QUEUE_SIZE", "200")),
        log_level=os.getenv("CALLSYNC_LOG_LEVEL", "INFO").upper(),
        ice=IceSettings(
            stun_urls=_stun_urls_from_env(),
            turn_url=os.getenv("TURN_URL") or None,
            turn_username=os.getenv("TURN_USERNAME", "user"),
            turn_password=os.getenv("TURN_PASSWORD", "pass"),
        ),
        storage=storage_settings_from_env(),
    )
