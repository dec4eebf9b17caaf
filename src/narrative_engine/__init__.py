"""Drama and interview engine for an esports management sim."""

from .catalog import TemplateCatalog
from .config import DEFAULT_CONFIG, EngineConfig, load_config
from .engine import DayResult, InterviewResult, NarrativeEngine, QueueShift
from .errors import CatalogError, EffectError, NarrativeError, StateError

__version__ = "0.1.0"

__all__ = [
    "NarrativeEngine",
    "DayResult",
    "InterviewResult",
    "QueueShift",
    "TemplateCatalog",
    "DEFAULT_CONFIG",
    "EngineConfig",
    "load_config",
    "NarrativeError",
    "EffectError",
    "CatalogError",
    "StateError",
]
