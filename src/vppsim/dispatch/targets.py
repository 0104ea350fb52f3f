"""
Ramp gating and objective target scaling.
"""

import math
from typing import FrozenSet, List

from .base import Candidate
from ..config.strategy_config import Objective, RiskPosture, RiskPostureParams

# Share of the event over which a linear ramp reaches full dispatch
LINEAR_RAMP_WINDOWS = {
    RiskPosture.RISK_AVERSE: 0.7,
    RiskPosture.NEUTRAL: 0.55,
    RiskPosture.OPPORTUNITY_SEEKING: 0.4,
}

OBJECTIVE_MARGIN_WEIGHTS = {
    Objective.CAPACITY: 0.5,
    Objective.RISK_MINIMIZATION: 1.0,
    Objective.EFFICIENCY: 0.0,
    Objective.REGRET_MINIMIZATION: 1.5,
}
LEARNING_PERTURBATION = 0.05
LEARNING_PERIOD_TICKS = 12


def ramp_fraction(posture: RiskPosture, params: RiskPostureParams, progress: float) -> float:
    """Share of the ranked list that may be dispatched at this point of the event."""
    progress = min(1.0, max(0.0, progress))
    start = params.ramp_up_speed

    if posture == RiskPosture.DEADLINE_AWARE:
        return min(1.0, start + (1.0 - start) * math.sqrt(progress))

    window = LINEAR_RAMP_WINDOWS[posture]
    return min(1.0, start + (1.0 - start) * min(1.0, progress / window))


def gate_candidates(ranked: List[Candidate], fraction: float,
                    previously_dispatched: FrozenSet[str]) -> List[Candidate]:
    """Keep previously dispatched assets, then fill the quota from the top.

    The returned list preserves ranking order.
    """
    if not ranked:
        return []
    quota = math.ceil(fraction * len(ranked))
    keep = {c.asset_id for c in ranked if c.asset_id in previously_dispatched}
    for candidate in ranked:
        if len(keep) >= quota:
            break
        keep.add(candidate.asset_id)
    return [c for c in ranked if c.asset_id in keep]


def scale_target(objective: Objective, target_kw: float, reserve_margin: float, tick: int) -> float:
    """Working target after the objective's headroom policy."""
    if objective == Objective.LEARNING_ORIENTED:
        phase = 2 * math.pi * tick / LEARNING_PERIOD_TICKS
        return target_kw * (1 + LEARNING_PERTURBATION * math.sin(phase))
    return target_kw * (1 + OBJECTIVE_MARGIN_WEIGHTS[objective] * reserve_margin)
