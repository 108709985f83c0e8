"""Decode raw OBD-II service-01 responses into physical values.

An ELM327 answers a ``01XX`` request with a hex string such as
``"41 0D 32"``: a 2-hex-char mode echo (``41``), a 2-hex-char PID echo,
then one or two data bytes ``A`` / ``B``.  :func:`decode` turns that string
into a float in the PID's engineering unit using the SAE J1979 formulas.

**Supported PIDs:**

=====  ==============================  ==========================  =======
PID    Name                            Formula                     Unit
=====  ==============================  ==========================  =======
04     ENGINE_LOAD                     100A / 255                  percent
05     COOLANT_TEMP                    A - 40                      degC
0A     FUEL_PRESSURE                   3A                          kPa
0B     INTAKE_PRESSURE                 A                           kPa
0C     RPM                             (256A + B) / 4              rpm
0D     SPEED                           A                           km/h
0E     TIMING_ADVANCE                  A / 2 - 64                  degree
0F     INTAKE_TEMP                     A - 40                      degC
10     MAF                             (256A + B) / 100            g/s
11     THROTTLE_POS                    100A / 255                  percent
2F     FUEL_LEVEL                      100A / 255                  percent
44     COMMANDED_EQUIV_RATIO           2 (256A + B) / 65536        ratio
5E     FUEL_RATE                       (256A + B) / 20             L/h
=====  ==============================  ==========================  =======

Any other PID decodes to ``0.0``.  Malformed, short or non-hex responses
(``"NO DATA"``, ``"?"``, truncated frames) also decode to ``0.0``; the
caller treats zero as "no data".  :func:`decode` never raises.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

# ---------------------------------------------------------------------------
# PID codes
# ---------------------------------------------------------------------------

PID_ENGINE_LOAD = "04"
PID_COOLANT_TEMP = "05"
PID_FUEL_PRESSURE = "0A"
PID_INTAKE_PRESSURE = "0B"
PID_RPM = "0C"
PID_SPEED = "0D"
PID_TIMING_ADVANCE = "0E"
PID_INTAKE_TEMP = "0F"
PID_MAF = "10"
PID_THROTTLE_POS = "11"
PID_FUEL_LEVEL = "2F"
PID_COMMANDED_EQUIV_RATIO = "44"
PID_FUEL_RATE = "5E"

SERVICE_01 = "01"

# Mode echo + PID echo, two hex chars each.
_HEADER_LEN = 4

_HEX_BYTE_RE = re.compile(r"^[0-9A-F]{2}$")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class PIDDefinition:
    """Static description of one service-01 PID."""

    code: str
    name: str
    unit: str
    data_bytes: int
    formula: Callable[[int, int], float]
    # Physical value -> raw integer (A, or 256A + B); used to build responses.
    inverse: Callable[[float], float]


def _one_byte_percent(a: int, _b: int) -> float:
    return a * 100.0 / 255.0


def _word(a: int, b: int) -> int:
    return a * 256 + b


_PIDS: Dict[str, PIDDefinition] = {
    d.code: d
    for d in (
        PIDDefinition(
            PID_ENGINE_LOAD, "ENGINE_LOAD", "percent", 1,
            _one_byte_percent, lambda v: v * 255.0 / 100.0,
        ),
        PIDDefinition(
            PID_COOLANT_TEMP, "COOLANT_TEMP", "degC", 1,
            lambda a, _b: float(a - 40), lambda v: v + 40.0,
        ),
        PIDDefinition(
            PID_FUEL_PRESSURE, "FUEL_PRESSURE", "kPa", 1,
            lambda a, _b: float(3 * a), lambda v: v / 3.0,
        ),
        PIDDefinition(
            PID_INTAKE_PRESSURE, "INTAKE_PRESSURE", "kPa", 1,
            lambda a, _b: float(a), lambda v: v,
        ),
        PIDDefinition(
            PID_RPM, "RPM", "rpm", 2,
            lambda a, b: _word(a, b) / 4.0, lambda v: v * 4.0,
        ),
        PIDDefinition(
            PID_SPEED, "SPEED", "km/h", 1,
            lambda a, _b: float(a), lambda v: v,
        ),
        PIDDefinition(
            PID_TIMING_ADVANCE, "TIMING_ADVANCE", "degree", 1,
            lambda a, _b: a / 2.0 - 64.0, lambda v: (v + 64.0) * 2.0,
        ),
        PIDDefinition(
            PID_INTAKE_TEMP, "INTAKE_TEMP", "degC", 1,
            lambda a, _b: float(a - 40), lambda v: v + 40.0,
        ),
        PIDDefinition(
            PID_MAF, "MAF", "g/s", 2,
            lambda a, b: _word(a, b) / 100.0, lambda v: v * 100.0,
        ),
        PIDDefinition(
            PID_THROTTLE_POS, "THROTTLE_POS", "percent", 1,
            _one_byte_percent, lambda v: v * 255.0 / 100.0,
        ),
        PIDDefinition(
            PID_FUEL_LEVEL, "FUEL_LEVEL", "percent", 1,
            _one_byte_percent, lambda v: v * 255.0 / 100.0,
        ),
        PIDDefinition(
            PID_COMMANDED_EQUIV_RATIO, "COMMANDED_EQUIV_RATIO", "ratio", 2,
            lambda a, b: 2.0 * _word(a, b) / 65536.0, lambda v: v * 65536.0 / 2.0,
        ),
        PIDDefinition(
            PID_FUEL_RATE, "FUEL_RATE", "L/h", 2,
            lambda a, b: _word(a, b) / 20.0, lambda v: v * 20.0,
        ),
    )
}

_NAME_TO_CODE: Dict[str, str] = {d.name: code for code, d in _PIDS.items()}

# PIDs polled on every tick by default.
CORE_PIDS = (PID_SPEED, PID_RPM, PID_MAF, PID_ENGINE_LOAD, PID_THROTTLE_POS)

PIDLike = Union[str, int]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalise_pid(pid: PIDLike) -> Optional[str]:
    """Return the canonical 2-hex-char PID code, or ``None`` if unparseable.

    Accepts ``"0D"``, ``"0d"``, ``"0x0D"``, the request form ``"010D"``,
    a registry name (``"SPEED"``) or an ``int`` (``13``).
    """
    if isinstance(pid, bool):
        return None
    if isinstance(pid, int):
        return f"{pid:02X}" if 0 <= pid <= 0xFF else None
    if not isinstance(pid, str):
        return None

    text = _WHITESPACE_RE.sub("", pid).upper()
    if text in _NAME_TO_CODE:
        return _NAME_TO_CODE[text]
    if text.startswith("0X"):
        text = text[2:]
    if len(text) == 4 and text.startswith(SERVICE_01):
        text = text[2:]
    if _HEX_BYTE_RE.match(text):
        return text
    return None


def get_definition(pid: PIDLike) -> Optional[PIDDefinition]:
    """Look up the registry entry for *pid* (``None`` if unsupported)."""
    code = normalise_pid(pid)
    if code is None:
        return None
    return _PIDS.get(code)


def command_for(pid: PIDLike) -> str:
    """Return the ELM327 request string for *pid*, e.g. ``"010D"``.

    Raises
    ------
    ValueError
        If *pid* cannot be interpreted as a PID code.
    """
    code = normalise_pid(pid)
    if code is None:
        raise ValueError(f"Not a valid PID code: {pid!r}")
    return f"{SERVICE_01}{code}"


def data_bytes(raw_response: str) -> str:
    """Strip whitespace, uppercase and drop the mode+PID header."""
    if not isinstance(raw_response, str):
        return ""
    clean = _WHITESPACE_RE.sub("", raw_response).upper()
    return clean[_HEADER_LEN:]


def decode(pid: PIDLike, raw_response: str) -> float:
    """Decode *raw_response* for *pid* into its engineering unit.

    Returns ``0.0`` for unknown PIDs and for any response that does not
    carry enough well-formed data bytes.
    """
    definition = get_definition(pid)
    if definition is None:
        return 0.0

    payload = data_bytes(raw_response)
    values = []
    for i in range(definition.data_bytes):
        chunk = payload[i * 2:i * 2 + 2]
        if not _HEX_BYTE_RE.match(chunk):
            return 0.0
        values.append(int(chunk, 16))

    a = values[0]
    b = values[1] if len(values) > 1 else 0
    return float(definition.formula(a, b))


def encode_response(pid: PIDLike, value: float) -> Optional[str]:
    """Build the response an adapter would send for *pid* reading *value*.

    The raw value is rounded and clamped to the PID's data width.  Returns
    ``None`` for unsupported PIDs.  Used by the simulation reader.
    """
    definition = get_definition(pid)
    if definition is None:
        return None
    max_raw = (1 << (8 * definition.data_bytes)) - 1
    raw = int(round(definition.inverse(float(value))))
    raw = min(max(raw, 0), max_raw)
    width = definition.data_bytes * 2
    return f"41{definition.code}{raw:0{width}X}"


def supported_pids() -> Dict[str, PIDDefinition]:
    """Return a copy of the PID registry keyed by code."""
    return dict(_PIDS)
