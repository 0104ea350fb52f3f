"""
Residential EV charging session model.

The vehicle charges at full rate by default. Once the remaining window is
too short to deliver the required energy with a 10% margin, the driver's
override latches and the charger runs at full rate until departure.
"""

from dataclasses import replace
from typing import Optional

from .assets import EvAsset
from .base import ExogenousInputs, StepStatus, Transition, TIMESTEP_HOURS
from .commands import EvCommand

OVERRIDE_MARGIN = 1.1


def deadline_pressure(asset: EvAsset, tick: int) -> bool:
    """True when full-rate charging to departure barely covers the remaining need."""
    params = asset.params
    remaining_kwh = params.e_req_kwh - asset.state.e_kwh
    if remaining_kwh <= 0:
        return False
    deliverable_kwh = params.p_max_kw * (params.t_depart - tick) * TIMESTEP_HOURS
    return deliverable_kwh <= OVERRIDE_MARGIN * remaining_kwh


def step_ev(asset: EvAsset, command: Optional[EvCommand], status: StepStatus,
            drift: float, inputs: ExogenousInputs) -> Transition:
    params, state = asset.params, asset.state
    tick = inputs.tick

    plugged = state.plugged or tick >= params.t_arrival
    if tick >= params.t_depart:
        departed = replace(state, plugged=False, dropped=True, baseline_drift=drift)
        return Transition(departed, 0.0)

    if not plugged:
        return Transition(replace(state, baseline_drift=drift), 0.0)

    override = state.override_active or deadline_pressure(asset, tick)

    charge_kw = params.p_max_kw
    if not override and status == StepStatus.APPLIED and command is not None:
        charge_kw = max(0.0, min(command.power_kw, params.p_max_kw))

    e_kwh = min(state.e_kwh + charge_kw * TIMESTEP_HOURS, params.e_capacity_kwh)
    new_state = replace(
        state,
        e_kwh=e_kwh,
        plugged=True,
        override_active=override,
        baseline_drift=drift,
    )

    baseline_kw = params.p_max_kw * (1 + state.baseline_bias + drift)
    return Transition(new_state, baseline_kw - charge_kw)
