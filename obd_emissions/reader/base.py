"""Abstract base class for OBD-II readers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class OBDReader(ABC):
    """Unified interface for querying raw OBD-II service-01 PIDs.

    Concrete implementations: ``SimulationReader`` (fixture-based) and
    ``LiveReader`` (python-OBD).  Readers return the adapter's raw
    hex response; decoding is done by :mod:`obd_emissions.pid_decoder` so
    real and simulated data follow the same path.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the OBD adapter."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Return ``True`` if the adapter connection is active."""

    @abstractmethod
    async def query(self, pid: str) -> Optional[str]:
        """Query a single service-01 PID (2-hex-char code, e.g. ``"0D"``).

        Returns the raw response line (``"410D32"``) or ``None`` if the
        adapter returned nothing usable.
        """
