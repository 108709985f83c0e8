"""OBD Emissions -- OBD-II trip telemetry and gasoline CO₂ estimation.

Polls a WiFi ELM327 adapter (or a simulated one) once per second,
decodes the raw service-01 responses, and accumulates trip CO₂ and
distance with :class:`obd_emissions.emissions.EmissionsEstimator`.
Finished trips are POSTed to the hosted trip store.
"""

__version__ = "0.1.0"
