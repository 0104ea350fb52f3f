"""
Tick orchestrator for the VPP dispatch simulator.

The orchestrator owns the canonical ``SimulationState``. Each tick it asks
the dispatch engine for commands, advances every asset model, aggregates the
delivered load reduction, scores the tick against the target and updates the
feedback memory the strategy sees next tick. Ticks are applied one at a time
under a lock, either on a wall-clock timer or through manual stepping, and
both paths share the same code so a seeded run replays identically.
"""

from collections import Counter
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
import copy
import logging
import threading
import numpy as np

from .config.scenario_config import Scenario
from .config.simulation_config import SimulationConfig, clamp_speed
from .config.strategy_config import RiskPosture, StrategyConfig
from .dispatch.base import DispatchContext
from .dispatch.engine import DispatchEngine
from .events import Event, EventType
from .exceptions import AssetError, SimulationError
from .models.base import AssetType, ExogenousInputs, StepStatus, clamp
from .models.physics import update_asset
from .state import (
    FeedbackMemory, INITIAL_TRUST, RunStatus, SimulationState, TimestepResult,
)
from .validation import ScenarioValidator

ERROR_CLAMP_MULTIPLE = 5.0
TRUST_PENALTY = 0.1
TRUST_REWARD = 0.02
PENALTY_EPSILON = 0.001


class TickStatus(Enum):
    """Outcome of a request to advance the simulation."""
    APPLIED = "applied"
    FAILED = "failed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class TickOutcome:
    """Explicit result of one tick attempt."""
    status: TickStatus
    tick: int
    result: Optional[TimestepResult] = None
    events: Tuple[Event, ...] = ()
    error: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.status == TickStatus.APPLIED


def calculate_penalty(target_kw: float, achieved_kw: float, exponent: float,
                      over_performance_ratio: float) -> float:
    """Deviation penalty for one tick.

    ``(|target - achieved| / (target + 0.001)) ** exponent``, discounted by
    the over-performance ratio when the target is exceeded. With no positive
    target there is nothing to track, so the tick is free.
    """
    if target_kw <= 0:
        return 0.0
    normalized = abs(target_kw - achieved_kw) / (target_kw + PENALTY_EPSILON)
    penalty = normalized ** exponent
    if achieved_kw > target_kw:
        penalty *= over_performance_ratio
    return penalty


StateCallback = Callable[[SimulationState], None]
OutcomeCallback = Callable[[TickOutcome], None]


class SimulationOrchestrator:
    """Drives a scenario tick by tick against a configurable strategy."""

    def __init__(
        self,
        scenario: Scenario,
        strategy: Optional[StrategyConfig] = None,
        config: Optional[SimulationConfig] = None,
        on_update: Optional[StateCallback] = None,
        on_complete: Optional[StateCallback] = None,
        on_error: Optional[OutcomeCallback] = None,
        engine: Optional[DispatchEngine] = None,
    ):
        """Validate inputs and build the initial state."""
        ScenarioValidator.validate(scenario)

        self.scenario = scenario
        self.config = config or SimulationConfig()
        self.engine = engine or DispatchEngine()
        self.logger = logging.getLogger("vppsim.simulation")

        self.on_update = on_update
        self.on_complete = on_complete
        self.on_error = on_error

        self._strategy = strategy or StrategyConfig()
        self._difficulty = self.config.difficulty_settings
        self._speed = clamp_speed(self.config.speed)

        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0

        self._rng = np.random.RandomState(self.config.random_seed)
        self._state = self._initial_state()

        self.logger.info(
            f"Simulation ready: {len(scenario.assets)} assets, {scenario.config.timesteps} ticks, "
            f"difficulty {self.config.difficulty}"
        )

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def status(self) -> RunStatus:
        return self._state.status

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def strategy(self) -> StrategyConfig:
        return self._strategy

    @property
    def step_interval(self) -> float:
        """Wall-clock seconds between timed ticks at the current speed."""
        return self.config.base_step_seconds / self._speed

    def get_state(self) -> SimulationState:
        """Defensive copy of the current state."""
        with self._lock:
            return copy.deepcopy(self._state)

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Start or resume timed ticking. Returns False if already running or complete."""
        with self._lock:
            if self._state.status in (RunStatus.RUNNING, RunStatus.COMPLETE):
                return False

            if self._state.tick >= self._state.total_ticks:
                self._complete()
                return False

            self._set_status(RunStatus.RUNNING)
            self._schedule_next()
            return True

    def pause(self) -> bool:
        """Pause timed ticking and cancel the pending tick."""
        with self._lock:
            if self._state.status != RunStatus.RUNNING:
                return False
            self._cancel_timer()
            self._set_status(RunStatus.PAUSED)
            return True

    def reset(self) -> None:
        """Discard all progress and return to the initial state."""
        with self._lock:
            self._cancel_timer()
            self._rng = np.random.RandomState(self.config.random_seed)
            self._state = self._initial_state()
            self.engine.reset_history()
            self.logger.info("Simulation reset")
            self._notify_update()

    def step(self) -> TickOutcome:
        """Apply exactly one tick. Only allowed while not running."""
        with self._lock:
            if self._state.status in (RunStatus.RUNNING, RunStatus.COMPLETE):
                reason = f"cannot step while {self._state.status.value}"
                self.logger.warning(f"Step rejected: {reason}")
                return TickOutcome(TickStatus.REJECTED, self._state.tick, error=reason)

            if self._state.status == RunStatus.NOT_STARTED:
                self._state = replace(self._state, status=RunStatus.PAUSED)
            return self._advance()

    def set_speed(self, speed: float) -> float:
        """Set playback speed (clamped to 0.5-10x); takes effect on the next tick."""
        with self._lock:
            self._speed = clamp_speed(speed)
            if self._state.status == RunStatus.RUNNING:
                self._cancel_timer()
                self._schedule_next()
            self.logger.debug(f"Speed set to {self._speed}x")
            return self._speed

    def update_strategy_config(self, partial: Dict[str, Any]) -> StrategyConfig:
        """Merge a partial strategy update; invalid updates raise and change nothing."""
        with self._lock:
            self._strategy = self._strategy.with_updates(partial)
            self.logger.info(f"Strategy updated: {partial}")
            return self._strategy

    def update_risk_posture(self, posture: Union[RiskPosture, str]) -> StrategyConfig:
        return self.update_strategy_config({"risk_posture": posture})

    def update_dispatch_intensity(self, asset_type: Union[AssetType, str], intensity: float) -> StrategyConfig:
        return self.update_strategy_config(
            {"dispatch_intensity": {AssetType(asset_type).value: intensity}}
        )

    # ------------------------------------------------------------------
    # Timed loop
    # ------------------------------------------------------------------

    def _schedule_next(self) -> None:
        self._generation += 1
        generation = self._generation
        self._timer = threading.Timer(self.step_interval, self._on_timer, args=(generation,))
        self._timer.daemon = True
        self._timer.start()

    def _cancel_timer(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            # Stale timers from before a pause, reset or speed change are ignored
            if generation != self._generation or self._state.status != RunStatus.RUNNING:
                return

            outcome = self._advance()

            if outcome.status == TickStatus.FAILED:
                self._cancel_timer()
                self._set_status(RunStatus.PAUSED)
                self._notify(self.on_error, outcome)
            elif self._state.status == RunStatus.RUNNING:
                self._schedule_next()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def _advance(self) -> TickOutcome:
        """Compute one tick on copies and commit it atomically."""
        tick = self._state.tick
        if tick >= self._state.total_ticks:
            self._complete()
            return TickOutcome(TickStatus.REJECTED, tick, error="simulation horizon reached")

        rng_state = self._rng.get_state()
        try:
            new_state, result, events = self._compute_tick(self._state)
        except Exception as e:
            self._rng.set_state(rng_state)
            self.engine.discard_decisions_from(tick)
            self.logger.error(f"Tick {tick} failed: {e}", exc_info=True)
            failure = Event(EventType.TICK_FAILED, tick, self._sim_time(tick), {"error": str(e)})
            return TickOutcome(TickStatus.FAILED, tick, events=(failure,), error=str(e))

        self._state = new_state
        events.append(Event(
            EventType.TICK_APPLIED, tick, self._sim_time(tick),
            {"target_kw": result.target_kw, "achieved_kw": result.achieved_kw, "penalty": result.penalty},
        ))
        self.logger.debug(
            f"Tick {tick}: target {result.target_kw:.1f} kW, achieved {result.achieved_kw:.1f} kW, "
            f"penalty {result.penalty:.4f}"
        )

        if self._state.tick >= self._state.total_ticks:
            events.append(Event(EventType.SIMULATION_COMPLETE, tick, self._sim_time(tick)))
            self._complete()
        else:
            self._notify_update()

        return TickOutcome(TickStatus.APPLIED, tick, result, tuple(events))

    def _compute_tick(self, state: SimulationState) -> Tuple[SimulationState, TimestepResult, List[Event]]:
        scenario_config = self.scenario.config
        tick = state.tick
        sim_time = self._sim_time(tick)
        target_kw = scenario_config.target_for_tick(tick)
        outdoor_temp_f = scenario_config.outdoor_temp_for_tick(tick)
        events: List[Event] = []

        feedback = self._integrate_error(state.feedback, target_kw, state.previous_achieved_kw)

        context = DispatchContext(
            assets=state.assets,
            target_kw=target_kw,
            tick=tick,
            total_ticks=state.total_ticks,
            strategy=self._strategy,
            feedback=feedback,
            previous_achieved_kw=state.previous_achieved_kw,
            noncompliance_probability=scenario_config.noncompliance_probability,
        )
        decision = self.engine.dispatch(context, self._rng)

        known_ids = {asset.id for asset in state.assets}
        commands = {}
        for dispatch_command in decision.commands:
            if dispatch_command.asset_id not in known_ids:
                self.logger.warning(f"Ignoring command for unknown asset {dispatch_command.asset_id}")
                events.append(Event(EventType.UNKNOWN_ASSET, tick, sim_time, asset_id=dispatch_command.asset_id))
                continue
            commands[dispatch_command.asset_id] = dispatch_command.command

        dispatched = frozenset(commands)
        asset_types = {asset.id: asset.asset_type for asset in state.assets}
        dispatches_by_type = Counter(asset_types[asset_id] for asset_id in dispatched)
        new_dispatch_calls = Counter(
            asset_types[asset_id] for asset_id in dispatched - feedback.previously_dispatched
        )

        inputs = ExogenousInputs(
            tick=tick,
            outdoor_temp_f=outdoor_temp_f,
            start_hour=scenario_config.start_hour,
            noncompliance_probability=scenario_config.noncompliance_probability,
            sigma_drift=scenario_config.baseline_error.sigma_drift,
            rho=scenario_config.baseline_error.rho,
            measurement_noise_pct=scenario_config.measurement_noise_pct,
        )

        variability = self._difficulty.response_variability
        trust_scores = dict(feedback.trust_scores)
        delivered_by_type: Dict[AssetType, float] = {asset_type: 0.0 for asset_type in AssetType}
        achieved_kw = 0.0
        new_assets = []

        for asset in state.assets:
            try:
                step = update_asset(asset, commands.get(asset.id), inputs, self._rng)
            except Exception as e:
                error = AssetError(asset.id, str(e))
                self.logger.error(f"Tick {tick}: {error}", exc_info=True)
                events.append(Event(EventType.ASSET_ERROR, tick, sim_time, {"error": str(e)}, asset.id))
                new_assets.append(asset)
                continue

            if step.status == StepStatus.INAPPLICABLE:
                events.append(Event(EventType.COMMAND_REJECTED, tick, sim_time,
                                    {"command": type(commands[asset.id]).__name__}, asset.id))
            if step.dropped and not asset.dropped:
                self.logger.info(f"Asset {asset.id} dropped out at tick {tick}")
                events.append(Event(EventType.ASSET_DROPPED, tick, sim_time,
                                    {"asset_type": asset.asset_type.value}, asset.id))

            multiplier = 1 + (self._rng.random_sample() * 2 - 1) * variability
            delivered_kw = step.power_delta_kw * multiplier
            achieved_kw += delivered_kw
            delivered_by_type[asset.asset_type] += delivered_kw
            new_assets.append(step.asset)

            if asset.id in dispatched:
                trust = trust_scores.get(asset.id, INITIAL_TRUST)
                trust += -TRUST_PENALTY if step.dropped else TRUST_REWARD
                trust_scores[asset.id] = clamp(trust, 0.0, 1.0)

        if not np.isfinite(achieved_kw):
            raise SimulationError(f"Non-finite achieved power at tick {tick}")

        penalty = calculate_penalty(
            target_kw, achieved_kw,
            self._difficulty.penalty_exponent,
            self._difficulty.over_performance_penalty_ratio,
        )

        last_dispatch_tick = dict(feedback.last_dispatch_tick)
        dispatch_counts = dict(feedback.dispatch_counts)
        for asset_id in dispatched:
            last_dispatch_tick[asset_id] = tick
            dispatch_counts[asset_id] = dispatch_counts.get(asset_id, 0) + 1

        new_feedback = replace(
            feedback,
            trust_scores=trust_scores,
            previously_dispatched=dispatched,
            last_dispatch_tick=last_dispatch_tick,
            dispatch_counts=dispatch_counts,
        )

        result = TimestepResult(
            tick=tick,
            time=sim_time.strftime("%H:%M"),
            target_kw=target_kw,
            achieved_kw=achieved_kw,
            shortfall_kw=max(0.0, target_kw - achieved_kw),
            deviation_kw=target_kw - achieved_kw,
            penalty=penalty,
            assets_dropped=sum(1 for asset in new_assets if asset.dropped),
            outdoor_temp_f=outdoor_temp_f,
            dispatches_by_type=dict(dispatches_by_type),
            new_dispatch_calls=dict(new_dispatch_calls),
            delivered_kw_by_type=delivered_by_type,
        )

        new_state = replace(
            state,
            tick=tick + 1,
            assets=tuple(new_assets),
            history=state.history + [result],
            total_penalty=state.total_penalty + penalty,
            feedback=new_feedback,
        )
        return new_state, result, events

    @staticmethod
    def _integrate_error(feedback: FeedbackMemory, target_kw: float,
                         previous_achieved_kw: Optional[float]) -> FeedbackMemory:
        """Fold the previous tick's shortfall into the accumulator, clamped to ±5x target."""
        if previous_achieved_kw is None:
            return feedback
        error = target_kw - previous_achieved_kw
        limit = ERROR_CLAMP_MULTIPLE * target_kw
        return replace(
            feedback,
            accumulated_error=clamp(feedback.accumulated_error + error, -limit, limit),
            previous_error=feedback.last_error,
            last_error=error,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _initial_state(self) -> SimulationState:
        return SimulationState(
            tick=0,
            total_ticks=self.scenario.config.timesteps,
            assets=tuple(copy.deepcopy(self.scenario.assets)),
        )

    def _sim_time(self, tick: int) -> datetime:
        return self.scenario.config.time_at(tick)

    def _set_status(self, status: RunStatus) -> None:
        previous = self._state.status
        if previous == status:
            return
        self._state = replace(self._state, status=status)
        self.logger.info(f"Simulation {previous.value} -> {status.value}")
        self._notify_update()

    def _complete(self) -> None:
        if self._state.status == RunStatus.COMPLETE:
            return
        self._cancel_timer()
        self._state = replace(self._state, status=RunStatus.COMPLETE)
        self.logger.info(
            f"Simulation complete after {self._state.tick} ticks, "
            f"total penalty {self._state.total_penalty:.4f}"
        )
        self._notify_update()
        self._notify(self.on_complete, self.get_state())

    def _notify_update(self) -> None:
        self._notify(self.on_update, self.get_state())

    def _notify(self, callback: Optional[Callable[[Any], None]], payload: Any) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception as e:
            self.logger.error(f"Observer callback failed: {e}", exc_info=True)
