"""
Configuration package for the VPP dispatch simulator.
Provides validatable, serializable strategy, scenario and run configuration.
"""

from .base import (
    BaseConfig,
    ConfigFormat,
    ValidationLevel,
    ConfigValidationResult,
)

from .strategy_config import (
    DecisionFramework,
    Objective,
    RiskPosture,
    FeedbackMode,
    FRAMEWORK_SUBTYPES,
    ORDERING_FAMILIES,
    SELECTION_ORDERINGS,
    RiskPostureParams,
    RISK_POSTURE_PARAMS,
    StrategyConfig,
)

from .scenario_config import (
    WeatherConfig,
    TargetObjectiveConfig,
    BaselineErrorConfig,
    ScenarioConfig,
    Scenario,
)

from .simulation_config import (
    DifficultySettings,
    DIFFICULTY_PRESETS,
    SimulationConfig,
)

__all__ = [
    # Base configuration classes
    "BaseConfig",
    "ConfigFormat",
    "ValidationLevel",
    "ConfigValidationResult",

    # Strategy configuration
    "DecisionFramework",
    "Objective",
    "RiskPosture",
    "FeedbackMode",
    "FRAMEWORK_SUBTYPES",
    "ORDERING_FAMILIES",
    "SELECTION_ORDERINGS",
    "RiskPostureParams",
    "RISK_POSTURE_PARAMS",
    "StrategyConfig",

    # Scenario configuration
    "WeatherConfig",
    "TargetObjectiveConfig",
    "BaselineErrorConfig",
    "ScenarioConfig",
    "Scenario",

    # Run configuration
    "DifficultySettings",
    "DIFFICULTY_PRESETS",
    "SimulationConfig",
]
