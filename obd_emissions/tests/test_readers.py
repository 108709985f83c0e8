"""Tests for obd_emissions.reader -- simulation and python-OBD readers."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

import pytest

from obd_emissions.pid_decoder import PID_FUEL_RATE, PID_MAF, PID_RPM, PID_SPEED, decode
from obd_emissions.reader.live import LiveReader
from obd_emissions.reader.simulation import NO_DATA, SimulationReader
from obd_emissions.tick_builder import read_reading


# ---------------------------------------------------------------------------
# SimulationReader
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_connect_disconnect_lifecycle() -> None:
    reader = SimulationReader(scenario="city")
    assert not reader.is_connected()

    await reader.connect()
    assert reader.is_connected()

    await reader.disconnect()
    assert not reader.is_connected()


@pytest.mark.asyncio
async def test_unknown_scenario_raises() -> None:
    reader = SimulationReader(scenario="nonexistent")
    with pytest.raises(ValueError, match="Unknown simulation scenario"):
        await reader.connect()


@pytest.mark.asyncio
async def test_query_while_disconnected_raises() -> None:
    reader = SimulationReader(scenario="city")
    with pytest.raises(RuntimeError, match="not connected"):
        await reader.query(PID_SPEED)


@pytest.mark.asyncio
async def test_simulated_response_is_adapter_hex() -> None:
    reader = SimulationReader(scenario="idle", seed=1)
    await reader.connect()
    raw = await reader.query(PID_SPEED)
    assert raw == "410D00"
    await reader.disconnect()


@pytest.mark.asyncio
async def test_simulated_rpm_decodes_in_range() -> None:
    reader = SimulationReader(scenario="city", seed=7)
    await reader.connect()
    for _ in range(20):
        rpm = decode(PID_RPM, await reader.query(PID_RPM))
        # Base 1800, noise 300.
        assert 0 < rpm < 4000
    await reader.disconnect()


@pytest.mark.asyncio
async def test_noise_varies_between_reads() -> None:
    reader = SimulationReader(scenario="city", seed=3)
    await reader.connect()
    values = {await reader.query(PID_MAF) for _ in range(20)}
    assert len(values) > 1
    await reader.disconnect()


@pytest.mark.asyncio
async def test_seeded_readers_repeat() -> None:
    a = SimulationReader(scenario="highway", seed=42)
    b = SimulationReader(scenario="highway", seed=42)
    await a.connect()
    await b.connect()
    assert [await a.query(PID_SPEED) for _ in range(5)] == [
        await b.query(PID_SPEED) for _ in range(5)
    ]


@pytest.mark.asyncio
async def test_dropout_answers_no_data() -> None:
    reader = SimulationReader(scenario="maf_dropout", seed=0)
    await reader.connect()
    assert await reader.query(PID_MAF) == NO_DATA
    assert decode(PID_FUEL_RATE, await reader.query(PID_FUEL_RATE)) == pytest.approx(4.5)


@pytest.mark.asyncio
async def test_pid_missing_from_scenario() -> None:
    reader = SimulationReader(scenario="no_fuel_signal")
    await reader.connect()
    assert await reader.query(PID_MAF) == NO_DATA


@pytest.mark.asyncio
async def test_request_form_pid_accepted() -> None:
    reader = SimulationReader(scenario="no_fuel_signal")
    await reader.connect()
    assert await reader.query("010D") == "410D32"




# ---------------------------------------------------------------------------
# LiveReader against a stand-in for python-OBD
# ---------------------------------------------------------------------------

_CAR_CONNECTED = "Car Connected"
_ELM_CONNECTED = "ELM Connected"
_NOT_CONNECTED = "Not Connected"


class _FakeConnection:
    """Mimics ``obd.OBD``: answers queries from ``{pid_int: frame_bytes}``."""

    def __init__(self, status: str, frames: Dict[int, bytes]) -> None:
        self._status = status
        self.frames = frames
        self.closed = False
        self.queries: List[Tuple[int, bool]] = []

    def status(self) -> str:
        return self._status

    def close(self) -> None:
        self.closed = True
        self._status = _NOT_CONNECTED

    def query(self, cmd: Any, force: bool = False) -> SimpleNamespace:
        self.queries.append((cmd.pid, force))
        return _response(self._answer(cmd.pid))

    def _answer(self, pid: int) -> Optional[bytes]:
        return self.frames.get(pid)


class _LateAnsweringConnection(_FakeConnection):
    """Every reply arrives one request late, as after an adapter timeout."""

    def __init__(self, frames: Dict[int, bytes]) -> None:
        super().__init__(_CAR_CONNECTED, frames)
        self._previous: Optional[int] = None

    def _answer(self, pid: int) -> Optional[bytes]:
        previous, self._previous = self._previous, pid
        return self.frames.get(previous) if previous is not None else None


def _response(frame: Optional[bytes]) -> SimpleNamespace:
    messages = [SimpleNamespace(data=bytearray(frame))] if frame is not None else []
    return SimpleNamespace(messages=messages)


_FRAMES = {
    0x0D: bytes([0x41, 0x0D, 0x32]),
    0x0C: bytes([0x41, 0x0C, 0x1A, 0x2C]),
    0x10: bytes([0x41, 0x10, 0x01, 0x90]),
}


@pytest.fixture()
def fake_obd(monkeypatch: pytest.MonkeyPatch) -> SimpleNamespace:
    """Install a python-OBD stand-in; set ``.connection`` before connecting."""
    module = SimpleNamespace(
        OBDStatus=SimpleNamespace(
            CAR_CONNECTED=_CAR_CONNECTED,
            ELM_CONNECTED=_ELM_CONNECTED,
            NOT_CONNECTED=_NOT_CONNECTED,
        ),
        commands={1: [SimpleNamespace(pid=i) for i in range(0x60)]},
        connection=_FakeConnection(_CAR_CONNECTED, dict(_FRAMES)),
        opened_with={},
    )

    def _open(**kwargs: Any) -> _FakeConnection:
        module.opened_with = kwargs
        return module.connection

    module.OBD = _open
    monkeypatch.setattr("obd_emissions.reader.live._import_obd", lambda: module)
    return module


@pytest.mark.asyncio
async def test_live_reader_connects_with_port_url(fake_obd) -> None:
    reader = LiveReader("socket://192.168.0.10:35000", baudrate=38400, timeout=1.5)
    await reader.connect()
    assert reader.is_connected()
    assert fake_obd.opened_with["portstr"] == "socket://192.168.0.10:35000"
    assert fake_obd.opened_with["timeout"] == 1.5

    await reader.disconnect()
    assert fake_obd.connection.closed
    assert not reader.is_connected()


@pytest.mark.asyncio
async def test_live_reader_returns_raw_hex(fake_obd) -> None:
    reader = LiveReader("socket://192.168.0.10:35000")
    await reader.connect()
    assert await reader.query(PID_SPEED) == "410D32"
    assert decode(PID_RPM, await reader.query(PID_RPM)) == 1675.0
    assert decode(PID_MAF, await reader.query("0110")) == pytest.approx(4.0)
    assert fake_obd.connection.queries[0] == (0x0D, True)


@pytest.mark.asyncio
async def test_live_reader_no_answer_is_none(fake_obd) -> None:
    reader = LiveReader("/dev/rfcomm0")
    await reader.connect()
    assert await reader.query(PID_FUEL_RATE) is None
    assert await reader.query("not-a-pid") is None


@pytest.mark.asyncio
async def test_reply_for_another_pid_is_dropped(fake_obd) -> None:
    fake_obd.connection = _LateAnsweringConnection(dict(_FRAMES))
    reader = LiveReader("socket://192.168.0.10:35000")
    await reader.connect()

    assert await reader.query(PID_RPM) is None
    # The RPM frame arrives while MAF is being asked for.
    assert await reader.query(PID_MAF) is None

    reading = await read_reading(reader, (PID_SPEED, PID_MAF))
    assert reading.maf_gps == 0.0


@pytest.mark.asyncio
async def test_adapter_without_ecu_fails_to_connect(fake_obd) -> None:
    fake_obd.connection = _FakeConnection(_ELM_CONNECTED, dict(_FRAMES))
    reader = LiveReader("socket://192.168.0.10:35000")
    with pytest.raises(ConnectionError, match="not ready"):
        await reader.connect()
    assert fake_obd.connection.closed
    assert not reader.is_connected()


@pytest.mark.asyncio
async def test_live_query_before_connect_raises() -> None:
    reader = LiveReader("socket://192.168.0.10:35000")
    with pytest.raises(RuntimeError, match="not connected"):
        await reader.query(PID_SPEED)
