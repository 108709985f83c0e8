"""Fixture-based simulation reader (no hardware required).

Loads scenarios from ``fixtures/simulation_scenarios.json`` and applies
Gaussian noise to each PID read so consecutive ticks vary realistically.
Values are encoded back into adapter-style hex responses, so simulated
ticks go through exactly the same decoder as live ones.

Scenario format::

    {"city": {"pids": {"0D": {"base": 35, "noise": 8, "dropout": 0.0}}}}

``dropout`` is the probability that a read answers ``NO DATA``.
"""

from __future__ import annotations

import json
import random
from pathlib import Path
from typing import Any, Dict, Optional

from obd_emissions.pid_decoder import encode_response, normalise_pid
from obd_emissions.reader.base import OBDReader

_FIXTURES_DIR = Path(__file__).resolve().parent.parent / "fixtures"

NO_DATA = "NO DATA"


class SimulationReader(OBDReader):
    """Answers PID queries from a JSON fixture scenario."""

    def __init__(self, scenario: str = "city", *, seed: Optional[int] = None) -> None:
        self._scenario_name = scenario
        self._scenario: Dict[str, Any] = {}
        self._connected = False
        self._rng = random.Random(seed)

    # -- lifecycle ----------------------------------------------------------

    async def connect(self) -> None:
        scenarios = _load_scenarios()
        if self._scenario_name not in scenarios:
            available = ", ".join(sorted(scenarios))
            raise ValueError(
                f"Unknown simulation scenario '{self._scenario_name}'. "
                f"Available: {available}"
            )
        self._scenario = scenarios[self._scenario_name]
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    # -- data reads ---------------------------------------------------------

    async def query(self, pid: str) -> Optional[str]:
        self._check_connected()
        code = normalise_pid(pid)
        pid_def = self._scenario.get("pids", {}).get(code) if code else None
        if pid_def is None:
            return NO_DATA
        if self._rng.random() < pid_def.get("dropout", 0.0):
            return NO_DATA
        value = _apply_noise(self._rng, pid_def["base"], pid_def.get("noise", 0.0))
        return encode_response(code, value) or NO_DATA

    # -- internal -----------------------------------------------------------

    def _check_connected(self) -> None:
        if not self._connected:
            raise RuntimeError("SimulationReader is not connected")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_scenarios_cache: Optional[Dict[str, Any]] = None


def _load_scenarios() -> Dict[str, Any]:
    global _scenarios_cache
    if _scenarios_cache is None:
        path = _FIXTURES_DIR / "simulation_scenarios.json"
        with open(path, encoding="utf-8") as fh:
            _scenarios_cache = json.load(fh)
    return _scenarios_cache


def _apply_noise(rng: random.Random, base: float, noise: float) -> float:
    """Apply Gaussian noise (std-dev = noise) to a base value.

    Result is clamped to >= 0 since the simulated PIDs are non-negative.
    """
    if noise <= 0:
        return base
    return max(0.0, base + rng.gauss(0, noise))
