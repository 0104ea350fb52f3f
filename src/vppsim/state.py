"""Canonical simulation state and the per-tick history record."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from .models.assets import Asset
from .models.base import AssetType

INITIAL_TRUST = 0.5


class RunStatus(Enum):
    """Lifecycle of a simulation run."""
    NOT_STARTED = "not_started"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETE = "complete"


@dataclass(frozen=True)
class TimestepResult:
    """Immutable record of one applied tick."""
    tick: int
    time: str  # HH:MM of the tick start
    target_kw: float
    achieved_kw: float
    shortfall_kw: float  # unmet part of the target, never negative
    deviation_kw: float  # target - achieved, negative when over-delivering
    penalty: float
    assets_dropped: int
    outdoor_temp_f: float
    dispatches_by_type: Dict[AssetType, int] = field(default_factory=dict)
    new_dispatch_calls: Dict[AssetType, int] = field(default_factory=dict)
    delivered_kw_by_type: Dict[AssetType, float] = field(default_factory=dict)


@dataclass
class FeedbackMemory:
    """What the strategy remembers between ticks of one run."""
    accumulated_error: float = 0.0
    last_error: Optional[float] = None
    previous_error: Optional[float] = None
    trust_scores: Dict[str, float] = field(default_factory=dict)
    previously_dispatched: FrozenSet[str] = frozenset()
    last_dispatch_tick: Dict[str, int] = field(default_factory=dict)
    dispatch_counts: Dict[str, int] = field(default_factory=dict)

    def trust(self, asset_id: str) -> float:
        return self.trust_scores.get(asset_id, INITIAL_TRUST)


@dataclass
class SimulationState:
    """Everything the orchestrator owns for one run."""
    tick: int
    total_ticks: int
    assets: Tuple[Asset, ...]
    history: List[TimestepResult] = field(default_factory=list)
    total_penalty: float = 0.0
    status: RunStatus = RunStatus.NOT_STARTED
    feedback: FeedbackMemory = field(default_factory=FeedbackMemory)

    @property
    def is_running(self) -> bool:
        return self.status == RunStatus.RUNNING

    @property
    def is_complete(self) -> bool:
        return self.status == RunStatus.COMPLETE

    @property
    def previous_achieved_kw(self) -> Optional[float]:
        return self.history[-1].achieved_kw if self.history else None

    @property
    def dropped_count(self) -> int:
        return sum(1 for asset in self.assets if asset.dropped)

    def asset_by_id(self, asset_id: str) -> Optional[Asset]:
        for asset in self.assets:
            if asset.id == asset_id:
                return asset
        return None
