"""LiveReader -- python-OBD wrapper for real ELM327 adapters.

``port`` is anything pyserial's ``serial_for_url`` accepts, so the same
reader covers USB/Bluetooth serial devices (``/dev/rfcomm0``) and WiFi
dongles (``socket://192.168.0.10:35000``).

``python-OBD`` is imported lazily inside methods so that simulation mode
never touches it.  All blocking I/O is offloaded to a thread via
``asyncio.to_thread``.  Only the raw data bytes of python-OBD's first
message are used; decoding is done by :mod:`obd_emissions.pid_decoder`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import structlog

from obd_emissions.pid_decoder import normalise_pid
from obd_emissions.reader.base import OBDReader

logger = structlog.get_logger(__name__)

_SERVICE_01_REPLY = 0x41


class LiveReader(OBDReader):
    """Wraps ``obd.OBD`` for ELM327 adapter communication."""

    def __init__(
        self, port: str, baudrate: Optional[int] = 38400, timeout: float = 2.0
    ) -> None:
        self._port = port
        self._baudrate = baudrate
        self._timeout = timeout
        self._connection: Any = None  # obd.OBD instance (lazy)

    # -- lifecycle ----------------------------------------------------------

    async def connect(self) -> None:
        obd = _import_obd()
        connection = await asyncio.to_thread(
            obd.OBD,
            portstr=self._port,
            baudrate=self._baudrate,
            fast=False,
            timeout=self._timeout,
        )
        status = str(connection.status())
        if status != str(obd.OBDStatus.CAR_CONNECTED):
            # Adapter unreachable, or reachable but the ECU never answered.
            await asyncio.to_thread(connection.close)
            raise ConnectionError(
                f"OBD adapter at {self._port} not ready (status: {status})"
            )
        self._connection = connection
        logger.info("live_reader_connected", port=self._port, status=status)

    async def disconnect(self) -> None:
        if self._connection is not None:
            await asyncio.to_thread(self._connection.close)
            self._connection = None

    def is_connected(self) -> bool:
        if self._connection is None:
            return False
        obd = _import_obd()
        return str(self._connection.status()) != str(obd.OBDStatus.NOT_CONNECTED)

    # -- data reads ---------------------------------------------------------

    async def query(self, pid: str) -> Optional[str]:
        self._check_connected()
        code = normalise_pid(pid)
        if code is None:
            return None
        obd = _import_obd()
        cmd = _resolve_command(obd, code)
        if cmd is None:
            return None
        response = await asyncio.to_thread(self._connection.query, cmd, force=True)
        return _response_hex(response, code)

    # -- internal -----------------------------------------------------------

    def _check_connected(self) -> None:
        if self._connection is None:
            raise RuntimeError("LiveReader is not connected")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _import_obd() -> Any:
    """Lazy-import python-OBD so it's only needed in live mode."""
    try:
        import obd  # type: ignore[import-untyped]
        return obd
    except ImportError as exc:
        raise ImportError(
            "python-OBD is required for live mode. "
            "Install it with: pip install obd"
        ) from exc


def _resolve_command(obd: Any, code: str) -> Any:
    """Map a 2-hex-char PID code to the ``obd.commands`` mode-01 entry."""
    try:
        return obd.commands[1][int(code, 16)]
    except (IndexError, KeyError):
        return None


def _response_hex(response: Any, code: str) -> Optional[str]:
    """Return the first message's bytes as ``"41XX.."`` hex, or ``None``.

    A frame that echoes a different PID is dropped: its bytes belong to
    another request and would decode to the wrong quantity.
    """
    messages = getattr(response, "messages", None) or []
    if not messages:
        return None
    data = bytes(messages[0].data)
    if len(data) < 2 or data[0] != _SERVICE_01_REPLY or data[1] != int(code, 16):
        logger.warning(
            "pid_echo_mismatch",
            pid=code,
            frame=data.hex().upper(),
        )
        return None
    return data.hex().upper()
