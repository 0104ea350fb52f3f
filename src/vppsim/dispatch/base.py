"""
Base classes for the composable dispatch decision engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import logging
import numpy as np

from ..config.strategy_config import StrategyConfig
from ..models.assets import Asset
from ..models.commands import DispatchCommand
from ..state import FeedbackMemory


class DispatchStatus(Enum):
    """Outcome of a dispatch decision."""
    SUCCESS = "success"
    NO_OP = "no_op"


@dataclass(frozen=True)
class DispatchContext:
    """Everything the engine may look at when deciding one tick."""
    assets: Tuple[Asset, ...]
    target_kw: float
    tick: int
    total_ticks: int
    strategy: StrategyConfig
    feedback: FeedbackMemory = field(default_factory=FeedbackMemory)
    previous_achieved_kw: Optional[float] = None
    noncompliance_probability: float = 0.0

    @property
    def progress(self) -> float:
        """Fraction of the event already elapsed, 0-1."""
        if self.total_ticks <= 0:
            return 0.0
        return min(1.0, self.tick / self.total_ticks)

    @property
    def remaining_ticks(self) -> int:
        return max(0, self.total_ticks - self.tick)

    @property
    def error_kw(self) -> Optional[float]:
        """Shortfall of the previous tick against the current target."""
        if self.previous_achieved_kw is None:
            return None
        return self.target_kw - self.previous_achieved_kw

    def trust(self, asset_id: str) -> float:
        return self.feedback.trust(asset_id)


@dataclass(frozen=True)
class Candidate:
    """A dispatchable asset with its estimates and composite score."""
    asset: Asset
    capacity_kw: float
    drop_risk: float
    score: float = 0.0

    @property
    def asset_id(self) -> str:
        return self.asset.id


@dataclass
class DispatchPlan:
    """Working plan threaded through the pipeline stages."""
    ranked: List[Candidate]
    gated: List[Candidate]
    target_kw: float
    ramp_fraction: float = 1.0
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DispatchResult:
    """Result of one dispatch decision."""
    status: DispatchStatus
    commands: List[DispatchCommand] = field(default_factory=list)
    working_target_kw: float = 0.0
    ramp_fraction: float = 0.0
    estimated_kw: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def dispatched_ids(self) -> List[str]:
        return [command.asset_id for command in self.commands]

    @classmethod
    def no_op(cls, reason: str) -> 'DispatchResult':
        return cls(status=DispatchStatus.NO_OP, metadata={"reason": reason})


class FrameworkRefinement(ABC):
    """Base class for the decision-framework stage of the pipeline."""

    def __init__(self, name: str, subtype: str):
        self.name = name
        self.subtype = subtype
        self.logger = logging.getLogger(f"vppsim.dispatch.{name}")

    @abstractmethod
    def refine(self, plan: DispatchPlan, context: DispatchContext,
               rng: np.random.RandomState) -> DispatchPlan:
        """Adjust the working target and/or ordering of a plan."""
        pass

    def get_metadata(self) -> Dict[str, Any]:
        return {
            "framework": self.name,
            "subtype": self.subtype,
        }
