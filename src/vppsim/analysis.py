"""Scoring and analysis of completed (or partial) simulation runs."""

from typing import List, Dict, Any, Optional, Sequence
from dataclasses import dataclass, field
import numpy as np
import pandas as pd

from .models.base import AssetType, TIMESTEP_MINUTES
from .state import SimulationState, TimestepResult

GRADE_THRESHOLDS = [
    (0.01, "A+"),
    (0.03, "A"),
    (0.05, "B+"),
    (0.10, "B"),
    (0.15, "C"),
    (0.25, "D"),
]

@dataclass
class AssetTypePerformance:
    """Delivery and reliability of one asset type over a run."""
    asset_type: AssetType
    asset_count: int
    dropped_count: int
    dispatch_count: int
    total_kw_contributed: float
    avg_kw_per_tick: float
    compliance_rate: float  # % of assets still active

@dataclass
class FinalScore:
    """Headline score for a run."""
    total_penalty: float
    average_penalty: float
    percent_target_met: float
    assets_dropped: int
    grade: str
    total_kw_shifted: float = 0.0
    avg_kw_vs_target: float = 0.0
    asset_type_performance: List[AssetTypePerformance] = field(default_factory=list)
    most_dispatched_asset_type: Optional[AssetType] = None
    best_performing_asset_type: Optional[AssetType] = None
    worst_performing_asset_type: Optional[AssetType] = None

def grade_for(average_penalty: float) -> str:
    """Letter grade from the average per-tick penalty."""
    for threshold, grade in GRADE_THRESHOLDS:
        if average_penalty < threshold:
            return grade
    return "F"

def calculate_asset_type_performance(state: SimulationState) -> List[AssetTypePerformance]:
    """Per-type delivery from the physical deltas recorded each tick."""
    ticks = len(state.history)
    performance = []
    for asset_type in AssetType:
        assets = [asset for asset in state.assets if asset.asset_type == asset_type]
        dropped = sum(1 for asset in assets if asset.dropped)
        contributed = sum(r.delivered_kw_by_type.get(asset_type, 0.0) for r in state.history)
        dispatches = sum(r.dispatches_by_type.get(asset_type, 0) for r in state.history)
        performance.append(AssetTypePerformance(
            asset_type=asset_type,
            asset_count=len(assets),
            dropped_count=dropped,
            dispatch_count=dispatches,
            total_kw_contributed=contributed,
            avg_kw_per_tick=contributed / ticks if ticks else 0.0,
            compliance_rate=100.0 * (len(assets) - dropped) / len(assets) if assets else 100.0,
        ))
    return performance

def calculate_final_score(state: SimulationState) -> FinalScore:
    """Score a run: penalties, share of target met, grade and per-type breakdown."""
    ticks = len(state.history)
    assets_dropped = state.dropped_count
    if ticks == 0:
        return FinalScore(
            total_penalty=0.0,
            average_penalty=0.0,
            percent_target_met=100.0,
            assets_dropped=assets_dropped,
            grade="N/A",
            asset_type_performance=calculate_asset_type_performance(state),
        )

    total_target = sum(r.target_kw for r in state.history)
    total_achieved = sum(r.achieved_kw for r in state.history)
    average_penalty = state.total_penalty / ticks

    performance = calculate_asset_type_performance(state)
    active = [p for p in performance if p.asset_count > 0]

    return FinalScore(
        total_penalty=state.total_penalty,
        average_penalty=average_penalty,
        percent_target_met=100.0 * total_achieved / total_target if total_target > 0 else 100.0,
        assets_dropped=assets_dropped,
        grade=grade_for(average_penalty),
        total_kw_shifted=total_achieved,
        avg_kw_vs_target=(total_achieved - total_target) / ticks,
        asset_type_performance=performance,
        most_dispatched_asset_type=max(active, key=lambda p: p.dispatch_count).asset_type if active else None,
        best_performing_asset_type=max(active, key=lambda p: p.compliance_rate).asset_type if active else None,
        worst_performing_asset_type=min(active, key=lambda p: p.compliance_rate).asset_type if active else None,
    )

def history_to_frame(history: Sequence[TimestepResult]) -> pd.DataFrame:
    """Flatten tick history into a DataFrame indexed by tick."""
    rows: List[Dict[str, Any]] = []
    for result in history:
        row = {
            "tick": result.tick,
            "time": result.time,
            "target_kw": result.target_kw,
            "achieved_kw": result.achieved_kw,
            "shortfall_kw": result.shortfall_kw,
            "deviation_kw": result.deviation_kw,
            "penalty": result.penalty,
            "assets_dropped": result.assets_dropped,
            "outdoor_temp_f": result.outdoor_temp_f,
        }
        for asset_type in AssetType:
            row[f"dispatched_{asset_type.value}"] = result.dispatches_by_type.get(asset_type, 0)
            row[f"delivered_kw_{asset_type.value}"] = result.delivered_kw_by_type.get(asset_type, 0.0)
        rows.append(row)

    frame = pd.DataFrame(rows)
    if frame.empty:
        return frame
    return frame.set_index("tick")

def tracking_statistics(history: Sequence[TimestepResult]) -> Dict[str, float]:
    """Target-tracking error statistics."""
    if not history:
        return {}
    deviation = np.array([r.deviation_kw for r in history])
    return {
        "mean_deviation_kw": float(np.mean(deviation)),
        "mean_shortfall_kw": float(np.mean(np.clip(deviation, 0.0, None))),
        "rmse_kw": float(np.sqrt(np.mean(deviation ** 2))),
        "max_shortfall_kw": float(max(0.0, np.max(deviation))),
        "max_overshoot_kw": float(max(0.0, -np.min(deviation))),
    }

def format_duration(ticks: int) -> str:
    """Human-readable event length, e.g. ``"2h 30m"``."""
    total_minutes = ticks * TIMESTEP_MINUTES
    hours, minutes = divmod(total_minutes, 60)
    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"
