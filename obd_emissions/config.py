"""Tracker configuration via environment variables.

Uses pydantic-settings so every field can be overridden with an
env var.  Simulation is the zero-hardware default.

Note: ``env_prefix`` is empty, so field names map directly to env vars
(e.g. ``OBD_PORT``, ``LOG_LEVEL``).  The physical constants of the
emissions model are deliberately absent: they are fixed for gasoline.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

_DEFAULT_TCP_PORT = 35000


class TrackerSettings(BaseSettings):
    """Runtime settings for the trip tracker."""

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    # -- adapter / vehicle --------------------------------------------------
    obd_port: str = Field(
        default="sim",
        description=(
            "'sim', a serial device ('/dev/rfcomm0', 'COM3'), "
            "a pyserial URL ('socket://host:port') or WiFi 'host[:port]'"
        ),
    )
    obd_timeout_seconds: float = Field(
        default=2.0,
        description="Per-request timeout when talking to the adapter",
    )
    obd_baudrate: int = Field(
        default=38400,
        description="Serial baud rate passed to python-OBD (ignored by sockets)",
    )
    vehicle_id: str = Field(
        default="V-SIM-001",
        description="Pseudonymous vehicle identifier",
    )

    # -- simulation ---------------------------------------------------------
    obd_sim_scenario: str = Field(
        default="city",
        description="Simulation scenario name (from simulation_scenarios.json)",
    )

    # -- polling ------------------------------------------------------------
    poll_interval_seconds: float = Field(
        default=1.0,
        description="Seconds between telemetry ticks",
    )
    poll_fuel_rate: bool = Field(
        default=False,
        description="Also poll fuel rate (5E) and equivalence ratio (44)",
    )

    # -- trip store ---------------------------------------------------------
    trip_api_base_url: str = Field(
        default="http://127.0.0.1:8000",
        description="Base URL of the hosted trip store",
    )

    # -- behaviour ----------------------------------------------------------
    dry_run: bool = Field(
        default=False,
        description="Log finished trips locally; never POST them",
    )
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="console",
        description="Log output format: 'console' or 'json'",
    )
    max_retry_attempts: int = Field(
        default=3,
        description="Max HTTP retry attempts before buffering",
    )
    offline_buffer_max: int = Field(
        default=100,
        description="Max trips to buffer when the store is unreachable",
    )

    # -- validators ---------------------------------------------------------
    @field_validator("obd_port")
    @classmethod
    def check_obd_port(cls, v: str) -> str:
        """Accept ``sim``, a serial device, a pyserial URL or ``host[:port]``."""
        v = v.strip()
        if not v:
            raise ValueError("obd_port must not be empty")
        if v.lower() == "sim" or _is_serial_device(v):
            return v
        _socket_url(v)
        return v

    # -- derived ------------------------------------------------------------
    @property
    def is_simulation(self) -> bool:
        """Return ``True`` when the tracker is running in simulation mode."""
        return self.obd_port.lower() == "sim"

    @property
    def connection_url(self) -> str:
        """Port string handed to python-OBD / pyserial.

        ``host`` and ``host:port`` become ``socket://host:port`` (port
        35000, the usual WiFi ELM327 port, when omitted).  Serial devices
        and explicit URLs pass through unchanged.
        """
        if _is_serial_device(self.obd_port):
            return self.obd_port
        return _socket_url(self.obd_port)


# ---------------------------------------------------------------------------
# Port parsing
# ---------------------------------------------------------------------------

_SERIAL_DEVICE_RE = re.compile(r"^(/dev/\S+|COM\d+)$", re.IGNORECASE)
_URL_SCHEMES = ("socket", "rfc2217")


def _is_serial_device(port: str) -> bool:
    return bool(_SERIAL_DEVICE_RE.match(port))


def _socket_url(port: str) -> str:
    """Normalise *port* to ``scheme://host:port``; raise ``ValueError`` if bad."""
    if "://" in port:
        scheme, _, rest = port.partition("://")
        if scheme.lower() not in _URL_SCHEMES:
            raise ValueError(f"Unsupported adapter URL scheme: {scheme!r}")
    else:
        scheme, rest = "socket", port

    if rest.count(":") > 1 and not rest.startswith("["):
        raise ValueError(f"IPv6 adapter address must be bracketed: {port!r}")
    if rest.endswith(":"):
        raise ValueError(f"Adapter address has an empty port: {port!r}")

    parts = urlsplit(f"{scheme}://{rest}")
    try:
        tcp_port = parts.port
    except ValueError as exc:
        raise ValueError(f"Invalid adapter port in {port!r}") from exc
    if not parts.hostname or parts.path or parts.query:
        raise ValueError(f"Invalid adapter address: {port!r}")

    host = f"[{parts.hostname}]" if ":" in parts.hostname else parts.hostname
    return f"{scheme.lower()}://{host}:{tcp_port or _DEFAULT_TCP_PORT}"
