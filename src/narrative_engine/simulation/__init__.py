"""Headless season simulation for tuning narrative cadence."""

from .personas import PERSONAS
from .runner import AutoManager, SimulationReport, run_simulation

__all__ = [
    "AutoManager",
    "PERSONAS",
    "SimulationReport",
    "run_simulation",
]
