"""
Synthetic load generation.

Components:
    profiles: Diurnal curves, base volumes, and SimulationConfig
    generator: LoadGenerator producing 15-minute reading streams

Example:
    >>> from meterwatch.simulation import LoadGenerator, SimulationConfig
    >>> generator = LoadGenerator(reading_store, registry, seed=7)
    >>> readings = generator.generate("SM-001", start, end, SimulationConfig())
"""

from meterwatch.simulation.profiles import (
    HourlyPattern,
    Intensity,
    ProfileType,
    SimulationConfig,
)
from meterwatch.simulation.generator import (
    LoadGenerator,
    create_load_generator,
    initial_reading,
)

__all__ = [
    # Profiles
    "ProfileType",
    "Intensity",
    "HourlyPattern",
    "SimulationConfig",
    # Generator
    "LoadGenerator",
    "create_load_generator",
    "initial_reading",
]
