"""Residential battery energy model with a protected SOC reserve."""

from dataclasses import replace
from typing import Optional

from .assets import BatteryAsset
from .base import ExogenousInputs, StepStatus, Transition, TIMESTEP_HOURS
from .commands import BatteryCommand


def max_discharge_kw(asset: BatteryAsset) -> float:
    """Discharge ceiling from the power rating and the energy above reserve."""
    params, state = asset.params, asset.state
    energy_limited_kw = (state.soc - params.soc_reserve) * params.e_kwh / TIMESTEP_HOURS
    return max(0.0, min(params.p_dis_kw, energy_limited_kw))


def max_charge_kw(asset: BatteryAsset) -> float:
    params, state = asset.params, asset.state
    headroom_kw = (1.0 - state.soc) * params.e_kwh / TIMESTEP_HOURS
    return max(0.0, min(params.p_ch_kw, headroom_kw))


def step_battery(asset: BatteryAsset, command: Optional[BatteryCommand], status: StepStatus,
                 drift: float, inputs: ExogenousInputs) -> Transition:
    params, state = asset.params, asset.state
    soc = state.soc
    discharged_kw = 0.0

    if status == StepStatus.APPLIED and command is not None and params.e_kwh > 0:
        requested = command.power_kw
        if requested > 0:
            discharged_kw = min(requested, max_discharge_kw(asset))
            soc -= discharged_kw * TIMESTEP_HOURS / params.e_kwh
        elif requested < 0:
            charged_kw = min(-requested, max_charge_kw(asset))
            soc += charged_kw * TIMESTEP_HOURS / params.e_kwh

    new_state = replace(state, soc=min(1.0, soc), baseline_drift=drift)
    return Transition(new_state, discharged_kw)
