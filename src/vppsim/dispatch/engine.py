"""
Composable dispatch decision engine.

The pipeline is fixed: estimate capacity and risk, rank candidates by the
configured selection orderings, gate by the risk posture's ramp curve, scale
the target for the objective, apply the decision framework's refinement,
then synthesise commands until the working target is covered.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import logging
import math
import numpy as np

from .base import DispatchContext, DispatchPlan, DispatchResult, DispatchStatus, FrameworkRefinement
from .frameworks import create_refinement
from .selection import build_candidates, rank_candidates
from .synthesis import synthesize_commands
from .targets import gate_candidates, ramp_fraction, scale_target
from ..config.strategy_config import DecisionFramework


class DispatchEngine:
    """Turns a portfolio snapshot and a target into per-asset commands."""

    def __init__(self, name: str = "dispatch_engine"):
        self.name = name
        self.logger = logging.getLogger(f"vppsim.dispatch.{name}")

        self._refinements: Dict[Tuple[DecisionFramework, str], FrameworkRefinement] = {}
        self._decision_history: List[Dict[str, Any]] = []
        self._max_history = 1000

    def get_refinement(self, framework: DecisionFramework, subtype: str) -> FrameworkRefinement:
        key = (framework, subtype)
        if key not in self._refinements:
            self._refinements[key] = create_refinement(framework, subtype)
            self.logger.debug(f"Created refinement {framework.value}/{subtype}")
        return self._refinements[key]

    def dispatch(self, context: DispatchContext,
                 rng: Optional[np.random.RandomState] = None) -> DispatchResult:
        """Run the full pipeline for one tick."""
        rng = rng if rng is not None else np.random.RandomState()
        strategy = context.strategy

        if not math.isfinite(context.target_kw) or context.target_kw <= 0:
            return self._record(context, DispatchResult.no_op("no positive target"))

        candidates = build_candidates(context)
        if not candidates:
            return self._record(context, DispatchResult.no_op("no available capacity"))

        ranked = rank_candidates(candidates, context)

        fraction = ramp_fraction(strategy.risk_posture, strategy.posture_params, context.progress)
        gated = gate_candidates(ranked, fraction, context.feedback.previously_dispatched)

        working_target = scale_target(
            strategy.objective, context.target_kw, strategy.posture_params.reserve_margin, context.tick
        )

        plan = DispatchPlan(ranked=ranked, gated=gated, target_kw=working_target, ramp_fraction=fraction)
        refinement = self.get_refinement(strategy.decision_framework, strategy.framework_subtype)
        plan = refinement.refine(plan, context, rng)

        if not math.isfinite(plan.target_kw) or plan.target_kw <= 0:
            return self._record(context, DispatchResult.no_op("degenerate working target"))

        commands, estimated_kw = synthesize_commands(plan.gated, plan.target_kw, strategy)

        result = DispatchResult(
            status=DispatchStatus.SUCCESS if commands else DispatchStatus.NO_OP,
            commands=commands,
            working_target_kw=plan.target_kw,
            ramp_fraction=fraction,
            estimated_kw=estimated_kw,
            metadata={
                "candidates": len(ranked),
                "gated": len(plan.gated),
                **refinement.get_metadata(),
                **plan.metadata,
            },
        )
        self.logger.debug(
            f"Tick {context.tick}: target {context.target_kw:.1f} kW -> working "
            f"{plan.target_kw:.1f} kW, {len(commands)} commands, est {estimated_kw:.1f} kW"
        )
        return self._record(context, result)

    def _record(self, context: DispatchContext, result: DispatchResult) -> DispatchResult:
        """Record decision history for analysis."""
        self._decision_history.append({
            "timestamp": datetime.now(),
            "tick": context.tick,
            "status": result.status.value,
            "target_kw": context.target_kw,
            "working_target_kw": result.working_target_kw,
            "estimated_kw": result.estimated_kw,
            "commands": len(result.commands),
        })

        # Limit history size
        if len(self._decision_history) > self._max_history:
            self._decision_history = self._decision_history[-self._max_history:]
        return result

    def reset_history(self) -> None:
        self._decision_history = []

    def discard_decisions_from(self, tick: int) -> None:
        """Forget decisions for ticks that were rolled back."""
        self._decision_history = [h for h in self._decision_history if h["tick"] < tick]

    def get_performance_stats(self) -> Dict[str, Any]:
        """Summary statistics over recorded decisions."""
        if not self._decision_history:
            return {}

        history = self._decision_history
        no_ops = sum(1 for h in history if h["status"] == DispatchStatus.NO_OP.value)
        return {
            "total_decisions": len(history),
            "no_op_rate": no_ops / len(history),
            "avg_commands": float(np.mean([h["commands"] for h in history])),
            "avg_working_target_kw": float(np.mean([h["working_target_kw"] for h in history])),
            "avg_estimated_kw": float(np.mean([h["estimated_kw"] for h in history])),
        }
