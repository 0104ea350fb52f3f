"""
Test suite for the composable dispatch decision engine.

This test suite validates:
- Selection ordering weights and candidate ranking
- Risk-posture ramp gating and objective target scaling
- Every decision-framework refinement
- Command synthesis per asset type
- Degenerate inputs short-circuiting to a no-op
"""

import sys
from pathlib import Path
import math
import unittest
import numpy as np

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from vppsim.config import RISK_POSTURE_PARAMS, RiskPosture, Objective, StrategyConfig
from vppsim.config.strategy_config import FRAMEWORK_SUBTYPES, DecisionFramework
from vppsim.dispatch import (
    Candidate, DispatchContext, DispatchEngine, DispatchPlan, DispatchStatus,
    FeedbackControl, GreedyMyopic, Stochastic, DeterministicPolicy,
    build_candidates, create_refinement, gate_candidates, ordering_weights,
    rank_candidates, ramp_fraction, scale_target, synthesize_commands,
)
from vppsim.models import (
    BatteryCommand, CiBuildingCommand, EvCommand, FleetCommand, HvacCommand,
)
from vppsim.state import FeedbackMemory

from asset_factories import (
    make_battery, make_ci, make_ev, make_fleet, make_hvac, mixed_portfolio,
)


def make_context(assets, target_kw=100.0, tick=0, total_ticks=48, strategy=None,
                 feedback=None, previous_achieved_kw=None, noncompliance_probability=0.0):
    return DispatchContext(
        assets=tuple(assets),
        target_kw=target_kw,
        tick=tick,
        total_ticks=total_ticks,
        strategy=strategy or StrategyConfig(),
        feedback=feedback or FeedbackMemory(),
        previous_achieved_kw=previous_achieved_kw,
        noncompliance_probability=noncompliance_probability,
    )


def batteries(count):
    return [make_battery(f"b{i + 1}") for i in range(count)]


def candidates_for(assets, capacities=None, risks=None, scores=None):
    count = len(assets)
    capacities = capacities or [5.0] * count
    risks = risks or [0.1] * count
    scores = scores or [1.0] * count
    return [Candidate(a, c, r, s) for a, c, r, s in zip(assets, capacities, risks, scores)]


class TestSelection(unittest.TestCase):
    """Ordering weights and candidate ranking."""

    def test_ordering_weights_normalised(self):
        self.assertEqual(ordering_weights(1), [1.0])
        for count in (1, 2, 3):
            weights = ordering_weights(count)
            self.assertEqual(len(weights), count)
            self.assertAlmostEqual(sum(weights), 1.0)
            self.assertEqual(weights, sorted(weights, reverse=True))

        two = ordering_weights(2)
        self.assertAlmostEqual(two[0], 2.0 / 3.0)
        self.assertAlmostEqual(two[1], 1.0 / 3.0)

        three = ordering_weights(3)
        self.assertAlmostEqual(three[0], 6.0 / 11.0)
        self.assertAlmostEqual(three[2], 2.0 / 11.0)
        self.assertEqual(ordering_weights(0), [])

    def test_type_ordering_ranks_batteries_first(self):
        strategy = StrategyConfig(selection_orderings=["batteries_first"])
        context = make_context([make_hvac(), make_battery()], strategy=strategy)
        ranked = rank_candidates(build_candidates(context), context)

        self.assertEqual([c.asset_id for c in ranked], ["bat-1", "hvac-1"])
        self.assertAlmostEqual(ranked[0].score, 1.0)
        self.assertAlmostEqual(ranked[1].score, 0.8)

    def test_intensity_raises_priority(self):
        strategy = StrategyConfig(
            selection_orderings=["balanced_weighting"],
            dispatch_intensity={"hvac_resi": 100},
        )
        context = make_context([make_battery(), make_hvac()], strategy=strategy)
        ranked = rank_candidates(build_candidates(context), context)

        self.assertEqual(ranked[0].asset_id, "hvac-1")
        self.assertAlmostEqual(ranked[0].score, 0.75)
        self.assertAlmostEqual(ranked[1].score, 0.5)

    def test_dropped_and_empty_assets_are_not_candidates(self):
        assets = [make_hvac("h-dropped", dropped=True), make_ev("ev-away", plugged=False), make_battery()]
        candidates = build_candidates(make_context(assets))
        self.assertEqual([c.asset_id for c in candidates], ["bat-1"])

    def test_every_ordering_scores_a_mixed_portfolio(self):
        names = [
            "batteries_first", "hvac_first", "high_load_reduction_first", "balanced_weighting",
            "highest_trust_score", "lowest_variance", "best_historical_delivery",
            "highest_headroom", "lowest_marginal_comfort_cost", "highest_soc_buffer",
            "least_recently_dispatched", "round_robin", "fatigue_balanced",
        ]
        for name in names:
            context = make_context(mixed_portfolio(), strategy=StrategyConfig(selection_orderings=[name]))
            ranked = rank_candidates(build_candidates(context), context)
            self.assertEqual(len(ranked), 6, name)
            self.assertTrue(all(0.0 <= c.score <= 1.5 for c in ranked), name)


class TestTargets(unittest.TestCase):
    """Ramp gating and objective scaling."""

    def test_ramp_starts_at_posture_speed(self):
        for posture, params in RISK_POSTURE_PARAMS.items():
            self.assertAlmostEqual(ramp_fraction(posture, params, 0.0), params.ramp_up_speed)
            self.assertAlmostEqual(ramp_fraction(posture, params, 1.0), 1.0)

    def test_linear_ramp_windows(self):
        neutral = RISK_POSTURE_PARAMS[RiskPosture.NEUTRAL]
        self.assertAlmostEqual(ramp_fraction(RiskPosture.NEUTRAL, neutral, 0.275), 0.75)
        self.assertAlmostEqual(ramp_fraction(RiskPosture.NEUTRAL, neutral, 0.6), 1.0)

    def test_deadline_aware_ramp_is_concave(self):
        params = RISK_POSTURE_PARAMS[RiskPosture.DEADLINE_AWARE]
        self.assertAlmostEqual(ramp_fraction(RiskPosture.DEADLINE_AWARE, params, 0.25), 0.625)

    def test_gate_fills_quota_from_the_top(self):
        ranked = candidates_for(batteries(4))
        gated = gate_candidates(ranked, 0.5, frozenset())
        self.assertEqual([c.asset_id for c in gated], ["b1", "b2"])

    def test_gate_retains_previously_dispatched(self):
        ranked = candidates_for(batteries(4))
        gated = gate_candidates(ranked, 0.5, frozenset({"b4"}))
        self.assertEqual([c.asset_id for c in gated], ["b1", "b4"])

        gated = gate_candidates(ranked, 0.25, frozenset({"b3", "b4"}))
        self.assertEqual([c.asset_id for c in gated], ["b3", "b4"])

    def test_scale_target_per_objective(self):
        self.assertAlmostEqual(scale_target(Objective.CAPACITY, 100.0, 0.25, 0), 112.5)
        self.assertAlmostEqual(scale_target(Objective.RISK_MINIMIZATION, 100.0, 0.25, 0), 125.0)
        self.assertAlmostEqual(scale_target(Objective.EFFICIENCY, 100.0, 0.25, 0), 100.0)
        self.assertAlmostEqual(scale_target(Objective.REGRET_MINIMIZATION, 100.0, 0.2, 0), 130.0)
        self.assertAlmostEqual(scale_target(Objective.LEARNING_ORIENTED, 100.0, 0.25, 3), 105.0)
        self.assertAlmostEqual(scale_target(Objective.LEARNING_ORIENTED, 100.0, 0.25, 0), 100.0)


class TestFrameworks(unittest.TestCase):
    """Decision-framework refinements."""

    def setUp(self):
        self.rng = np.random.RandomState(42)
        self.assets = batteries(2)
        self.ranked = candidates_for(self.assets)

    def plan(self, target_kw=100.0, gated=None):
        return DispatchPlan(ranked=list(self.ranked), gated=list(gated or self.ranked), target_kw=target_kw)

    def test_error_correction_closes_gap(self):
        context = make_context(self.assets, previous_achieved_kw=80.0)
        plan = FeedbackControl("error_correction").refine(self.plan(), context, self.rng)
        self.assertAlmostEqual(plan.target_kw, 116.0)

    def test_correction_clamped_to_twice_nominal(self):
        context = make_context(self.assets, previous_achieved_kw=0.0)
        plan = FeedbackControl("error_correction").refine(self.plan(150.0), context, self.rng)
        self.assertAlmostEqual(plan.target_kw, 200.0)

    def test_pid_uses_integral_and_derivative(self):
        feedback = FeedbackMemory(accumulated_error=30.0, last_error=20.0, previous_error=10.0)
        context = make_context(self.assets, previous_achieved_kw=80.0, feedback=feedback)
        plan = FeedbackControl("pid_like_control").refine(self.plan(), context, self.rng)
        self.assertAlmostEqual(plan.target_kw, 130.0)

    def test_no_correction_without_closed_loop(self):
        for mode in ("none", "post_event_learning"):
            strategy = StrategyConfig(feedback_mode=mode)
            context = make_context(self.assets, previous_achieved_kw=80.0, strategy=strategy)
            plan = FeedbackControl("error_correction").refine(self.plan(), context, self.rng)
            self.assertAlmostEqual(plan.target_kw, 100.0, msg=mode)

        context = make_context(self.assets, previous_achieved_kw=None)
        plan = FeedbackControl("error_correction").refine(self.plan(), context, self.rng)
        self.assertAlmostEqual(plan.target_kw, 100.0)

    def test_adaptive_weighting_prefers_trusted_assets(self):
        ranked = candidates_for(self.assets, scores=[1.0, 0.8])
        feedback = FeedbackMemory(trust_scores={"b1": 0.0, "b2": 1.0})
        context = make_context(self.assets, feedback=feedback)
        plan = DispatchPlan(ranked=ranked, gated=list(ranked), target_kw=10.0)

        plan = FeedbackControl("adaptive_weighting").refine(plan, context, self.rng)
        self.assertEqual([c.asset_id for c in plan.gated], ["b2", "b1"])

    def test_greedy_reorders_gated(self):
        ranked = candidates_for(self.assets, capacities=[2.0, 5.0], risks=[0.1, 0.6])
        plan = DispatchPlan(ranked=ranked, gated=list(ranked), target_kw=10.0)
        context = make_context(self.assets)

        plan = GreedyMyopic("max_capacity_now").refine(plan, context, self.rng)
        self.assertEqual([c.asset_id for c in plan.gated], ["b2", "b1"])

        plan = GreedyMyopic("min_risk_now").refine(plan, context, self.rng)
        self.assertEqual([c.asset_id for c in plan.gated], ["b1", "b2"])

    def test_stochastic_subtypes(self):
        context = make_context(self.assets, noncompliance_probability=0.0)

        plan = Stochastic("expected_value").refine(self.plan(), context, self.rng)
        self.assertAlmostEqual(plan.target_kw, 100.0)

        plan = Stochastic("chance_constrained").refine(self.plan(), context, self.rng)
        self.assertAlmostEqual(plan.target_kw, 105.0)

        # Two 5 kW batteries at the default 75% utilisation
        plan = Stochastic("monte_carlo_weighted").refine(self.plan(), context, self.rng)
        self.assertAlmostEqual(plan.target_kw, 7.5)

        certain = make_context(self.assets, noncompliance_probability=1.0)
        plan = Stochastic("expected_value").refine(self.plan(), certain, self.rng)
        self.assertAlmostEqual(plan.target_kw, 200.0)

    def test_state_machine_phases(self):
        policy = DeterministicPolicy("state_machine")

        plan = policy.refine(self.plan(), make_context(self.assets, tick=0), self.rng)
        self.assertAlmostEqual(plan.target_kw, 70.0)
        self.assertEqual(plan.metadata["phase"], "warmup")

        plan = policy.refine(self.plan(), make_context(self.assets, tick=24), self.rng)
        self.assertAlmostEqual(plan.target_kw, 100.0)

        plan = policy.refine(self.plan(), make_context(self.assets, tick=48), self.rng)
        self.assertAlmostEqual(plan.target_kw, 70.0)
        self.assertEqual(plan.metadata["phase"], "taper")

    def test_threshold_triggered_holds_dispatch_in_band(self):
        feedback = FeedbackMemory(previously_dispatched=frozenset({"b2"}))
        context = make_context(self.assets, previous_achieved_kw=98.0, feedback=feedback)
        plan = DeterministicPolicy("threshold_triggered").refine(self.plan(), context, self.rng)
        self.assertEqual([c.asset_id for c in plan.gated], ["b2"])

        outside = make_context(self.assets, previous_achieved_kw=80.0, feedback=feedback)
        plan = DeterministicPolicy("threshold_triggered").refine(self.plan(), outside, self.rng)
        self.assertEqual(len(plan.gated), 2)

    def test_scenario_tree_branches(self):
        policy = DeterministicPolicy("scenario_tree")
        cases = [(80.0, 110.0, "shortfall"), (120.0, 90.0, "overshoot"), (95.0, 100.0, "on_track")]
        for previous, expected, branch in cases:
            context = make_context(self.assets, previous_achieved_kw=previous)
            plan = policy.refine(self.plan(), context, self.rng)
            self.assertAlmostEqual(plan.target_kw, expected)
            self.assertEqual(plan.metadata["branch"], branch)

    def test_every_subtype_can_be_created(self):
        for framework, subtypes in FRAMEWORK_SUBTYPES.items():
            for subtype in subtypes:
                refinement = create_refinement(framework, subtype)
                self.assertEqual(refinement.get_metadata()["subtype"], subtype)

        with self.assertRaises(ValueError):
            create_refinement(DecisionFramework.STOCHASTIC, "static_priority")


class TestSynthesis(unittest.TestCase):
    """Per-type command synthesis."""

    def test_walk_stops_when_target_covered(self):
        strategy = StrategyConfig(dispatch_intensity={"battery_resi": 100})
        ordered = candidates_for(batteries(3))
        commands, estimated = synthesize_commands(ordered, 7.0, strategy)

        self.assertEqual([c.asset_id for c in commands], ["b1", "b2"])
        self.assertEqual(commands[0].command, BatteryCommand(power_kw=5.0))
        self.assertAlmostEqual(commands[1].command.power_kw, 2.0)
        self.assertAlmostEqual(estimated, 7.0)

    def test_hvac_setpoint_shift(self):
        cooling = candidates_for([make_hvac()], capacities=[3.5])
        commands, estimated = synthesize_commands(cooling, 10.0, StrategyConfig())
        self.assertEqual(commands[0].command, HvacCommand(delta_setpoint_f=2))
        self.assertAlmostEqual(estimated, 2.625)

        low = StrategyConfig(dispatch_intensity={"hvac_resi": 0})
        commands, _ = synthesize_commands(cooling, 10.0, low)
        self.assertEqual(commands[0].command, HvacCommand(delta_setpoint_f=1))

        heating = candidates_for([make_hvac(mode="heating", pref_setpoint_f=70.0, setpoint_f=70.0,
                                            tin_f=70.0, beta=0.6)], capacities=[3.5])
        commands, _ = synthesize_commands(heating, 10.0, StrategyConfig())
        self.assertEqual(commands[0].command, HvacCommand(delta_setpoint_f=-2))

    def test_ev_and_fleet_commands(self):
        ev = candidates_for([make_ev()], capacities=[7.2])
        commands, estimated = synthesize_commands(ev, 3.0, StrategyConfig())
        self.assertIsInstance(commands[0].command, EvCommand)
        self.assertAlmostEqual(commands[0].command.power_kw, 4.2)
        self.assertAlmostEqual(estimated, 3.0)

        fleet = candidates_for([make_fleet()], capacities=[70.0])
        commands, estimated = synthesize_commands(fleet, 30.0, StrategyConfig())
        self.assertIsInstance(commands[0].command, FleetCommand)
        self.assertAlmostEqual(commands[0].command.site_power_cap_kw, 40.0)
        self.assertAlmostEqual(estimated, 30.0)

    def test_high_intensity_curtails_ci_process(self):
        ci = candidates_for([make_ci()], capacities=[150.0])

        commands, estimated = synthesize_commands(ci, 20.0, StrategyConfig(dispatch_intensity={"ci_building": 80}))
        self.assertEqual(commands[0].command, CiBuildingCommand(hvac_shed_kw=20.0, process_on=False))
        self.assertAlmostEqual(estimated, 70.0)

        commands, estimated = synthesize_commands(ci, 20.0, StrategyConfig())
        self.assertTrue(commands[0].command.process_on)
        self.assertAlmostEqual(estimated, 20.0)


class TestDispatchEngine(unittest.TestCase):
    """End-to-end engine pipeline."""

    def setUp(self):
        self.engine = DispatchEngine()
        self.rng = np.random.RandomState(0)

    def test_zero_target_is_no_op(self):
        result = self.engine.dispatch(make_context(batteries(2), target_kw=0.0), self.rng)
        self.assertEqual(result.status, DispatchStatus.NO_OP)
        self.assertEqual(result.commands, [])

    def test_non_finite_target_is_no_op(self):
        for target in (math.nan, math.inf, -5.0):
            result = self.engine.dispatch(make_context(batteries(2), target_kw=target), self.rng)
            self.assertEqual(result.status, DispatchStatus.NO_OP)
            self.assertEqual(result.commands, [])

    def test_no_candidates_is_no_op(self):
        assets = [make_hvac("h1", dropped=True), make_hvac("h2", dropped=True)]
        result = self.engine.dispatch(make_context(assets), self.rng)
        self.assertEqual(result.status, DispatchStatus.NO_OP)
        self.assertEqual(result.metadata["reason"], "no available capacity")

    def test_full_pipeline(self):
        strategy = StrategyConfig(
            decision_framework="deterministic_policy",
            framework_subtype="static_priority",
            objective="efficiency",
            selection_orderings=["highest_headroom"],
            risk_posture="opportunity_seeking",
            feedback_mode="none",
            dispatch_intensity={"battery_resi": 100},
        )
        context = make_context(batteries(2), target_kw=6.0, total_ticks=12, strategy=strategy)
        result = self.engine.dispatch(context, self.rng)

        self.assertEqual(result.status, DispatchStatus.SUCCESS)
        self.assertEqual(result.dispatched_ids, ["b1", "b2"])
        self.assertAlmostEqual(result.commands[0].command.power_kw, 5.0)
        self.assertAlmostEqual(result.commands[1].command.power_kw, 1.0)
        self.assertAlmostEqual(result.estimated_kw, 6.0)
        self.assertAlmostEqual(result.ramp_fraction, 0.6)
        self.assertEqual(result.metadata["framework"], "deterministic_policy")

    def test_ramp_limits_early_dispatch(self):
        strategy = StrategyConfig(risk_posture="risk_averse", objective="efficiency")
        context = make_context(batteries(4), target_kw=100.0, strategy=strategy)
        result = self.engine.dispatch(context, self.rng)
        self.assertEqual(len(result.commands), 2)

    def test_seeded_dispatch_is_reproducible(self):
        strategy = StrategyConfig(decision_framework="stochastic", framework_subtype="chance_constrained")
        context = make_context(mixed_portfolio(), target_kw=50.0, strategy=strategy,
                               noncompliance_probability=0.3)
        first = DispatchEngine().dispatch(context, np.random.RandomState(5))
        second = DispatchEngine().dispatch(context, np.random.RandomState(5))

        self.assertEqual(first.working_target_kw, second.working_target_kw)
        self.assertEqual(first.commands, second.commands)

    def test_performance_stats(self):
        self.engine.dispatch(make_context(batteries(2), target_kw=0.0), self.rng)
        self.engine.dispatch(make_context(batteries(2), target_kw=5.0), self.rng)

        stats = self.engine.get_performance_stats()
        self.assertEqual(stats["total_decisions"], 2)
        self.assertAlmostEqual(stats["no_op_rate"], 0.5)

        self.engine.reset_history()
        self.assertEqual(self.engine.get_performance_stats(), {})


if __name__ == "__main__":
    unittest.main(verbosity=2)
