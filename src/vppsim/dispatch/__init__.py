"""
Composable dispatch decision engine for the VPP dispatch simulator.

This package provides:
- Capacity/risk based candidate ranking over configurable selection orderings
- Risk-posture ramp gating and objective-driven target scaling
- Decision-framework refinements (deterministic, greedy, stochastic, feedback)
- Per-asset command synthesis
"""

from .base import (
    DispatchStatus,
    DispatchContext,
    Candidate,
    DispatchPlan,
    DispatchResult,
    FrameworkRefinement,
)
from .selection import ordering_weights, build_candidates, rank_candidates
from .targets import ramp_fraction, gate_candidates, scale_target
from .frameworks import (
    DeterministicPolicy,
    GreedyMyopic,
    Stochastic,
    FeedbackControl,
    create_refinement,
)
from .synthesis import synthesize_commands
from .engine import DispatchEngine

__all__ = [
    "DispatchStatus",
    "DispatchContext",
    "Candidate",
    "DispatchPlan",
    "DispatchResult",
    "FrameworkRefinement",
    "ordering_weights",
    "build_candidates",
    "rank_candidates",
    "ramp_fraction",
    "gate_candidates",
    "scale_target",
    "DeterministicPolicy",
    "GreedyMyopic",
    "Stochastic",
    "FeedbackControl",
    "create_refinement",
    "synthesize_commands",
    "DispatchEngine",
]
