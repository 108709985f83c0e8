"""OBD reader abstraction layer.

Provides ``OBDReader`` ABC with two concrete implementations:

* ``SimulationReader``  -- fixture-based, no hardware required.
* ``LiveReader``        -- python-OBD wrapper (serial, Bluetooth or WiFi).
"""

from obd_emissions.reader.base import OBDReader

__all__ = ["OBDReader"]
