"""VPP dispatch simulator library initialization."""

from .config import Scenario, ScenarioConfig, SimulationConfig, StrategyConfig
from .dispatch import DispatchEngine
from .exceptions import VPPSimError
from .simulation import SimulationOrchestrator, TickOutcome, TickStatus
from .state import RunStatus, SimulationState, TimestepResult

# Import advanced modules
from . import analysis
from . import dispatch
from . import models

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = [
    "Scenario",
    "ScenarioConfig",
    "SimulationConfig",
    "StrategyConfig",
    "DispatchEngine",
    "VPPSimError",
    "SimulationOrchestrator",
    "TickOutcome",
    "TickStatus",
    "RunStatus",
    "SimulationState",
    "TimestepResult",
    "analysis",
    "dispatch",
    "models",
]
