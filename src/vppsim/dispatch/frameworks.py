"""
Decision-framework refinements.

Exactly one refinement runs per dispatch. It may change the working target,
the order of the gated assets, or the gated set itself, but never produces
commands directly.
"""

from typing import Callable, Dict, List
import numpy as np

from .base import Candidate, DispatchContext, DispatchPlan, FrameworkRefinement
from ..config.strategy_config import DecisionFramework, FeedbackMode, FRAMEWORK_SUBTYPES
from ..models.estimators import comfort_cost, utilization_multiplier


class DeterministicPolicy(FrameworkRefinement):
    """Fixed rules keyed on event phase or on the previous tick's outcome."""

    def __init__(self, subtype: str):
        super().__init__(DecisionFramework.DETERMINISTIC_POLICY.value, subtype)

        # Event phases
        self.early_phase_end = 0.15
        self.late_phase_start = 0.85
        self.phase_derate = 0.7

        # Outcome bands, as fractions of the nominal target
        self.freeze_band = 0.05
        self.branch_band = 0.10
        self.branch_step = 0.10

        self._rules: Dict[str, Callable[[DispatchPlan, DispatchContext], DispatchPlan]] = {
            "static_priority": self._static_priority,
            "state_machine": self._state_machine,
            "threshold_triggered": self._threshold_triggered,
            "scenario_tree": self._scenario_tree,
        }

    def refine(self, plan: DispatchPlan, context: DispatchContext,
               rng: np.random.RandomState) -> DispatchPlan:
        return self._rules[self.subtype](plan, context)

    def _static_priority(self, plan: DispatchPlan, context: DispatchContext) -> DispatchPlan:
        return plan

    def _state_machine(self, plan: DispatchPlan, context: DispatchContext) -> DispatchPlan:
        progress = context.progress
        if progress < self.early_phase_end:
            plan.target_kw *= self.phase_derate
            plan.metadata["phase"] = "warmup"
        elif progress > self.late_phase_start:
            taper_window = 1.0 - self.late_phase_start
            taper = (progress - self.late_phase_start) / taper_window
            plan.target_kw *= 1.0 - (1.0 - self.phase_derate) * min(1.0, taper)
            plan.metadata["phase"] = "taper"
        else:
            plan.metadata["phase"] = "sustain"
        return plan

    def _threshold_triggered(self, plan: DispatchPlan, context: DispatchContext) -> DispatchPlan:
        previous = context.previous_achieved_kw
        nominal = context.target_kw
        dispatched = context.feedback.previously_dispatched
        if previous is None or nominal <= 0 or not dispatched:
            return plan

        if abs(previous - nominal) <= self.freeze_band * nominal:
            plan.gated = [c for c in plan.ranked if c.asset_id in dispatched]
            plan.metadata["frozen"] = True
            self.logger.debug(f"Tick {context.tick}: within band, holding {len(plan.gated)} assets")
        return plan

    def _scenario_tree(self, plan: DispatchPlan, context: DispatchContext) -> DispatchPlan:
        previous = context.previous_achieved_kw
        nominal = context.target_kw
        if previous is None or nominal <= 0:
            return plan

        deviation = (nominal - previous) / nominal
        if deviation > self.branch_band:
            plan.target_kw *= 1.0 + self.branch_step
            plan.metadata["branch"] = "shortfall"
        elif deviation < -self.branch_band:
            plan.target_kw *= 1.0 - self.branch_step
            plan.metadata["branch"] = "overshoot"
        else:
            plan.metadata["branch"] = "on_track"
        return plan


class GreedyMyopic(FrameworkRefinement):
    """Re-rank the gated assets by a single instantaneous criterion."""

    def __init__(self, subtype: str):
        super().__init__(DecisionFramework.GREEDY_MYOPIC.value, subtype)
        self.min_comfort_cost = 0.1
        self._keys: Dict[str, Callable[[Candidate], float]] = {
            "max_capacity_now": lambda c: -c.capacity_kw,
            "min_risk_now": lambda c: c.drop_risk,
            "best_efficiency_now": lambda c: -c.capacity_kw / max(self.min_comfort_cost, comfort_cost(c.asset)),
        }

    def refine(self, plan: DispatchPlan, context: DispatchContext,
               rng: np.random.RandomState) -> DispatchPlan:
        plan.gated = sorted(plan.gated, key=self._keys[self.subtype])
        return plan


class Stochastic(FrameworkRefinement):
    """Sample noncompliance over a short lookahead and adjust the target."""

    def __init__(self, subtype: str):
        super().__init__(DecisionFramework.STOCHASTIC.value, subtype)
        self.num_samples = 10
        self.max_lookahead = 6
        self.confidence_percentile = 95
        self.reserve_per_conservation = 0.1

    def _sample_dropout(self, candidates: List[Candidate], context: DispatchContext,
                        rng: np.random.RandomState) -> np.ndarray:
        """Per-sample, per-asset share of lookahead ticks lost to noncompliance."""
        lookahead = max(1, min(self.max_lookahead, context.remaining_ticks))
        draws = rng.random_sample((self.num_samples, len(candidates), lookahead))
        return (draws < context.noncompliance_probability).mean(axis=2)

    def refine(self, plan: DispatchPlan, context: DispatchContext,
               rng: np.random.RandomState) -> DispatchPlan:
        if not plan.gated:
            return plan

        dropout = self._sample_dropout(plan.gated, context, rng)
        capacity = np.array([c.capacity_kw for c in plan.gated])
        total_capacity = capacity.sum()
        if total_capacity <= 0:
            return plan

        sample_dropout = dropout @ capacity / total_capacity

        if self.subtype == "expected_value":
            expected = float(sample_dropout.mean())
            plan.target_kw *= 1.0 + expected
            plan.metadata["expected_dropout"] = expected
        elif self.subtype == "chance_constrained":
            conservation = context.strategy.posture_params.conservation_factor
            tail = float(np.percentile(sample_dropout, self.confidence_percentile))
            plan.target_kw *= 1.0 + tail + self.reserve_per_conservation * conservation
            plan.metadata["tail_dropout"] = tail
        else:
            usable = capacity * np.array([
                utilization_multiplier(c.asset.asset_type, context.strategy.intensity_for(c.asset.asset_type))
                for c in plan.gated
            ])
            achievable = ((1.0 - dropout) * usable).sum(axis=1)
            median = float(np.median(achievable))
            plan.target_kw = min(plan.target_kw, median)
            plan.metadata["median_achievable_kw"] = median

        return plan


class FeedbackControl(FrameworkRefinement):
    """Correct the working target using the previous tick's error."""

    def __init__(self, subtype: str):
        super().__init__(DecisionFramework.FEEDBACK_CONTROL.value, subtype)
        self.proportional_gain = 0.8
        self.kp = 1.2
        self.ki = 0.1
        self.kd = 0.3
        self.max_target_ratio = 2.0

    def refine(self, plan: DispatchPlan, context: DispatchContext,
               rng: np.random.RandomState) -> DispatchPlan:
        mode = context.strategy.feedback_mode

        if self.subtype == "adaptive_weighting" and mode != FeedbackMode.NONE:
            plan.gated = sorted(
                plan.gated, key=lambda c: -c.score * (0.5 + context.trust(c.asset_id))
            )

        error = context.error_kw
        if mode != FeedbackMode.CLOSED_LOOP or error is None:
            return plan

        if self.subtype == "pid_like_control":
            previous_error = context.feedback.previous_error
            derivative = 0.0 if previous_error is None else error - previous_error
            adjustment = (self.kp * error
                          + self.ki * context.feedback.accumulated_error
                          + self.kd * derivative)
        else:
            adjustment = self.proportional_gain * error

        ceiling = self.max_target_ratio * context.target_kw
        plan.target_kw = min(ceiling, max(0.0, plan.target_kw + adjustment))
        plan.metadata["error_kw"] = error
        return plan


FRAMEWORK_CLASSES: Dict[DecisionFramework, type] = {
    DecisionFramework.DETERMINISTIC_POLICY: DeterministicPolicy,
    DecisionFramework.GREEDY_MYOPIC: GreedyMyopic,
    DecisionFramework.STOCHASTIC: Stochastic,
    DecisionFramework.FEEDBACK_CONTROL: FeedbackControl,
}


def create_refinement(framework: DecisionFramework, subtype: str) -> FrameworkRefinement:
    """Instantiate the refinement for a framework/subtype pair."""
    if subtype not in FRAMEWORK_SUBTYPES[framework]:
        raise ValueError(f"Subtype '{subtype}' is not valid for {framework.value}")
    return FRAMEWORK_CLASSES[framework](subtype)
