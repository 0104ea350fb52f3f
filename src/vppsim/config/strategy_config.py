"""
Composable dispatch strategy configuration.

A strategy combines one decision framework (with a subtype), one objective,
an ordered list of one to three asset-selection orderings, a risk posture,
a feedback mode, and per-asset-type dispatch intensity. Configurations are
validated when they are built, so an invalid combination never reaches the
dispatch engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Type

from .base import BaseConfig, ConfigValidationResult, ValidationLevel
from ..exceptions import InvalidConfigurationError
from ..models.base import AssetType
from ..models.estimators import DEFAULT_INTENSITY


class DecisionFramework(str, Enum):
    DETERMINISTIC_POLICY = "deterministic_policy"
    GREEDY_MYOPIC = "greedy_myopic"
    STOCHASTIC = "stochastic"
    FEEDBACK_CONTROL = "feedback_control"


class Objective(str, Enum):
    CAPACITY = "capacity"
    RISK_MINIMIZATION = "risk_minimization"
    EFFICIENCY = "efficiency"
    REGRET_MINIMIZATION = "regret_minimization"
    LEARNING_ORIENTED = "learning_oriented"


class RiskPosture(str, Enum):
    RISK_AVERSE = "risk_averse"
    NEUTRAL = "neutral"
    OPPORTUNITY_SEEKING = "opportunity_seeking"
    DEADLINE_AWARE = "deadline_aware"


class FeedbackMode(str, Enum):
    NONE = "none"
    CLOSED_LOOP = "closed_loop"
    POST_EVENT_LEARNING = "post_event_learning"


FRAMEWORK_SUBTYPES: Dict[DecisionFramework, List[str]] = {
    DecisionFramework.DETERMINISTIC_POLICY: [
        "static_priority", "threshold_triggered", "state_machine", "scenario_tree",
    ],
    DecisionFramework.GREEDY_MYOPIC: [
        "max_capacity_now", "min_risk_now", "best_efficiency_now",
    ],
    DecisionFramework.STOCHASTIC: [
        "expected_value", "chance_constrained", "monte_carlo_weighted",
    ],
    DecisionFramework.FEEDBACK_CONTROL: [
        "error_correction", "adaptive_weighting", "pid_like_control",
    ],
}

ORDERING_FAMILIES: Dict[str, List[str]] = {
    "asset_type_based": [
        "batteries_first", "hvac_first", "high_load_reduction_first", "balanced_weighting",
    ],
    "performance_based": [
        "highest_trust_score", "lowest_variance", "best_historical_delivery",
    ],
    "state_based": [
        "highest_headroom", "lowest_marginal_comfort_cost", "highest_soc_buffer",
    ],
    "fairness_based": [
        "least_recently_dispatched", "round_robin", "fatigue_balanced",
    ],
}

SELECTION_ORDERINGS = [name for names in ORDERING_FAMILIES.values() for name in names]
MAX_SELECTION_ORDERINGS = 3


@dataclass(frozen=True)
class RiskPostureParams:
    """Numeric knobs behind a risk posture."""
    reserve_margin: float       # extra target headroom
    dispatch_timing: float      # -1 (late) .. +1 (early)
    ramp_up_speed: float        # initial dispatch fraction
    conservation_factor: float  # drop-risk weighting


RISK_POSTURE_PARAMS: Dict[RiskPosture, RiskPostureParams] = {
    RiskPosture.RISK_AVERSE: RiskPostureParams(0.4, -0.5, 0.3, 0.7),
    RiskPosture.NEUTRAL: RiskPostureParams(0.25, 0.0, 0.5, 0.5),
    RiskPosture.OPPORTUNITY_SEEKING: RiskPostureParams(0.15, 0.3, 0.6, 0.3),
    RiskPosture.DEADLINE_AWARE: RiskPostureParams(0.35, 0.0, 0.25, 0.6),
}


def _coerce_enum(enum_cls: Type[Enum], value: Any, field_name: str) -> Enum:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = [member.value for member in enum_cls]
        raise InvalidConfigurationError(
            f"Unknown {field_name} {value!r}; expected one of {allowed}"
        ) from None


def _default_intensity() -> Dict[AssetType, float]:
    return {asset_type: DEFAULT_INTENSITY for asset_type in AssetType}


@dataclass
class StrategyConfig(BaseConfig):
    """Strategy selected by the operator for one dispatch event."""
    decision_framework: DecisionFramework = DecisionFramework.FEEDBACK_CONTROL
    framework_subtype: str = "error_correction"
    objective: Objective = Objective.CAPACITY
    selection_orderings: List[str] = field(
        default_factory=lambda: ["balanced_weighting", "highest_headroom"]
    )
    risk_posture: RiskPosture = RiskPosture.NEUTRAL
    feedback_mode: FeedbackMode = FeedbackMode.CLOSED_LOOP
    dispatch_intensity: Dict[AssetType, float] = field(default_factory=_default_intensity)

    def __post_init__(self):
        self.decision_framework = _coerce_enum(DecisionFramework, self.decision_framework, "decision framework")
        self.objective = _coerce_enum(Objective, self.objective, "objective")
        self.risk_posture = _coerce_enum(RiskPosture, self.risk_posture, "risk posture")
        self.feedback_mode = _coerce_enum(FeedbackMode, self.feedback_mode, "feedback mode")
        self.selection_orderings = list(self.selection_orderings)

        intensity = _default_intensity()
        for key, value in (self.dispatch_intensity or {}).items():
            intensity[_coerce_enum(AssetType, key, "asset type")] = value
        self.dispatch_intensity = intensity

        self.ensure_valid(ValidationLevel.STRICT)

    @property
    def posture_params(self) -> RiskPostureParams:
        return RISK_POSTURE_PARAMS[self.risk_posture]

    def intensity_for(self, asset_type: AssetType) -> float:
        return self.dispatch_intensity.get(asset_type, DEFAULT_INTENSITY)

    def validate(self) -> ConfigValidationResult:
        """Validate the strategy combination."""
        result = ConfigValidationResult(is_valid=True)

        subtypes = FRAMEWORK_SUBTYPES[self.decision_framework]
        if self.framework_subtype not in subtypes:
            result.add_error(
                f"Subtype '{self.framework_subtype}' is not valid for "
                f"{self.decision_framework.value}; expected one of {subtypes}"
            )

        if not 1 <= len(self.selection_orderings) <= MAX_SELECTION_ORDERINGS:
            result.add_error(
                f"Between 1 and {MAX_SELECTION_ORDERINGS} selection orderings are required, "
                f"got {len(self.selection_orderings)}"
            )

        for ordering in self.selection_orderings:
            if ordering not in SELECTION_ORDERINGS:
                result.add_error(f"Unknown selection ordering: {ordering}")

        if len(set(self.selection_orderings)) != len(self.selection_orderings):
            result.add_warning("Duplicate selection orderings count once per rank")

        for asset_type, value in self.dispatch_intensity.items():
            if not isinstance(value, (int, float)) or not 0 <= value <= 100:
                result.add_error(
                    f"Dispatch intensity for {asset_type.value} must be within 0-100, got {value!r}"
                )

        if (self.decision_framework == DecisionFramework.FEEDBACK_CONTROL
                and self.feedback_mode == FeedbackMode.NONE):
            result.add_warning("feedback_control has no error signal while feedback mode is 'none'")

        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "decision_framework": self.decision_framework.value,
            "framework_subtype": self.framework_subtype,
            "objective": self.objective.value,
            "selection_orderings": list(self.selection_orderings),
            "risk_posture": self.risk_posture.value,
            "feedback_mode": self.feedback_mode.value,
            "dispatch_intensity": {
                asset_type.value: value for asset_type, value in self.dispatch_intensity.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StrategyConfig':
        """Create from dictionary."""
        return cls(
            decision_framework=data.get("decision_framework", DecisionFramework.FEEDBACK_CONTROL),
            framework_subtype=data.get("framework_subtype", "error_correction"),
            objective=data.get("objective", Objective.CAPACITY),
            selection_orderings=data.get("selection_orderings", ["balanced_weighting", "highest_headroom"]),
            risk_posture=data.get("risk_posture", RiskPosture.NEUTRAL),
            feedback_mode=data.get("feedback_mode", FeedbackMode.CLOSED_LOOP),
            dispatch_intensity=data.get("dispatch_intensity", {}),
        )

    def with_updates(self, partial: Dict[str, Any]) -> 'StrategyConfig':
        """Return a new configuration with ``partial`` merged over this one.

        Lists are replaced rather than merged; intensity settings merge per
        asset type. Raises InvalidConfigurationError when the result is invalid.
        """
        return self.merge(partial)
