"""
Asset selection and ordering.

Each selection ordering scores every candidate in [0, 1] (higher is
dispatched first). Up to three orderings are combined with rank weights
proportional to 1/(rank+1), normalised to sum to 1, and the composite is
scaled by the asset type's intensity-derived priority multiplier.
"""

from dataclasses import replace
from typing import Callable, Dict, List, Sequence
import numpy as np

from .base import Candidate, DispatchContext
from ..config.strategy_config import FeedbackMode, SELECTION_ORDERINGS
from ..models.assets import CiBuildingAsset
from ..models.base import AssetType, TICKS_PER_HOUR
from ..models.ci_building import FATIGUE_DROP_THRESHOLD
from ..models.estimators import (
    comfort_cost, estimate_capacity, estimate_drop_risk, priority_multiplier, soc_buffer,
)
from ..state import INITIAL_TRUST

TYPE_PRIORITY_ORDERS: Dict[str, List[AssetType]] = {
    "batteries_first": [
        AssetType.BATTERY_RESI, AssetType.HVAC_RESI, AssetType.EV_RESI,
        AssetType.FLEET_SITE, AssetType.CI_BUILDING,
    ],
    "hvac_first": [
        AssetType.HVAC_RESI, AssetType.BATTERY_RESI, AssetType.EV_RESI,
        AssetType.FLEET_SITE, AssetType.CI_BUILDING,
    ],
    "high_load_reduction_first": [
        AssetType.CI_BUILDING, AssetType.FLEET_SITE, AssetType.EV_RESI,
        AssetType.BATTERY_RESI, AssetType.HVAC_RESI,
    ],
}

CriterionFunction = Callable[[Sequence[Candidate], DispatchContext], np.ndarray]


def ordering_weights(count: int) -> List[float]:
    """Rank weights for ``count`` orderings: 1/(rank+1), normalised."""
    if count <= 0:
        return []
    raw = [1.0 / (rank + 1) for rank in range(count)]
    total = sum(raw)
    return [weight / total for weight in raw]


def _trust_values(candidates: Sequence[Candidate], context: DispatchContext) -> np.ndarray:
    if context.strategy.feedback_mode == FeedbackMode.NONE:
        return np.full(len(candidates), INITIAL_TRUST)
    return np.array([context.trust(c.asset_id) for c in candidates])


def _headroom(candidates: Sequence[Candidate]) -> np.ndarray:
    capacities = np.array([c.capacity_kw for c in candidates])
    peak = capacities.max() if len(capacities) else 0.0
    if peak <= 0:
        return np.zeros(len(candidates))
    return capacities / peak


# --- Asset type based -------------------------------------------------------------

def _type_order_criterion(order_name: str) -> CriterionFunction:
    order = TYPE_PRIORITY_ORDERS[order_name]

    def criterion(candidates: Sequence[Candidate], context: DispatchContext) -> np.ndarray:
        return np.array([1.0 - 0.2 * order.index(c.asset.asset_type) for c in candidates])

    return criterion


def balanced_weighting(candidates: Sequence[Candidate], context: DispatchContext) -> np.ndarray:
    return np.full(len(candidates), 0.5)


# --- Performance based ------------------------------------------------------------

def highest_trust_score(candidates: Sequence[Candidate], context: DispatchContext) -> np.ndarray:
    return _trust_values(candidates, context)


def lowest_variance(candidates: Sequence[Candidate], context: DispatchContext) -> np.ndarray:
    """Prefer assets whose delivery is predictable: settled trust and low drop risk."""
    trust = _trust_values(candidates, context)
    trust_spread = 4.0 * trust * (1.0 - trust)
    risk = np.array([c.drop_risk for c in candidates])
    return 0.5 * (1.0 - trust_spread) + 0.5 * (1.0 - risk)


def best_historical_delivery(candidates: Sequence[Candidate], context: DispatchContext) -> np.ndarray:
    return _trust_values(candidates, context) * _headroom(candidates)


# --- State based --------------------------------------------------------------------

def highest_headroom(candidates: Sequence[Candidate], context: DispatchContext) -> np.ndarray:
    return _headroom(candidates)


def lowest_marginal_comfort_cost(candidates: Sequence[Candidate], context: DispatchContext) -> np.ndarray:
    return np.array([1.0 - comfort_cost(c.asset) for c in candidates])


def highest_soc_buffer(candidates: Sequence[Candidate], context: DispatchContext) -> np.ndarray:
    return np.array([soc_buffer(c.asset) for c in candidates])


# --- Fairness based -----------------------------------------------------------------

def least_recently_dispatched(candidates: Sequence[Candidate], context: DispatchContext) -> np.ndarray:
    scores = []
    for c in candidates:
        last = context.feedback.last_dispatch_tick.get(c.asset_id)
        if last is None:
            scores.append(1.0)
        else:
            scores.append(min(1.0, (context.tick - last) / TICKS_PER_HOUR))
    return np.array(scores)


def round_robin(candidates: Sequence[Candidate], context: DispatchContext) -> np.ndarray:
    count = len(candidates)
    if count == 0:
        return np.zeros(0)
    positions = (np.arange(count) - context.tick) % count
    return 1.0 - positions / count


def fatigue_balanced(candidates: Sequence[Candidate], context: DispatchContext) -> np.ndarray:
    counts = np.array([context.feedback.dispatch_counts.get(c.asset_id, 0) for c in candidates], dtype=float)
    peak = counts.max() if len(counts) else 0.0
    usage = counts / peak if peak > 0 else np.zeros(len(candidates))
    for index, c in enumerate(candidates):
        if isinstance(c.asset, CiBuildingAsset):
            usage[index] = max(usage[index], min(1.0, c.asset.state.fatigue / FATIGUE_DROP_THRESHOLD))
    return 1.0 - usage


CRITERIA: Dict[str, CriterionFunction] = {
    "batteries_first": _type_order_criterion("batteries_first"),
    "hvac_first": _type_order_criterion("hvac_first"),
    "high_load_reduction_first": _type_order_criterion("high_load_reduction_first"),
    "balanced_weighting": balanced_weighting,
    "highest_trust_score": highest_trust_score,
    "lowest_variance": lowest_variance,
    "best_historical_delivery": best_historical_delivery,
    "highest_headroom": highest_headroom,
    "lowest_marginal_comfort_cost": lowest_marginal_comfort_cost,
    "highest_soc_buffer": highest_soc_buffer,
    "least_recently_dispatched": least_recently_dispatched,
    "round_robin": round_robin,
    "fatigue_balanced": fatigue_balanced,
}
if set(CRITERIA) != set(SELECTION_ORDERINGS):
    raise TypeError("Selection criteria do not cover every configured ordering")


def build_candidates(context: DispatchContext) -> List[Candidate]:
    """Estimate every live asset; zero-capacity assets are not candidates."""
    conservation = context.strategy.posture_params.conservation_factor
    candidates = []
    for asset in context.assets:
        if asset.dropped:
            continue
        capacity = estimate_capacity(asset)
        if capacity <= 0:
            continue
        candidates.append(Candidate(asset, capacity, estimate_drop_risk(asset, conservation)))
    return candidates


def composite_scores(candidates: Sequence[Candidate], context: DispatchContext) -> np.ndarray:
    orderings = context.strategy.selection_orderings
    scores = np.zeros(len(candidates))
    for weight, ordering in zip(ordering_weights(len(orderings)), orderings):
        scores += weight * np.clip(CRITERIA[ordering](candidates, context), 0.0, 1.0)

    multipliers = np.array([
        priority_multiplier(c.asset.asset_type, context.strategy.intensity_for(c.asset.asset_type))
        for c in candidates
    ])
    return scores * multipliers


def rank_candidates(candidates: Sequence[Candidate], context: DispatchContext) -> List[Candidate]:
    """Score and sort candidates, best first; ties keep portfolio order."""
    if not candidates:
        return []
    scores = composite_scores(candidates, context)
    scored = [replace(c, score=float(s)) for c, s in zip(candidates, scores)]
    order = sorted(range(len(scored)), key=lambda i: -scored[i].score)
    return [scored[i] for i in order]
