"""
Residential HVAC thermal model.

Indoor temperature follows a first-order envelope model driven by the
outdoor temperature, plus a fixed per-tick effect while the compressor runs.
A thermostat with hysteresis switches the unit around the active setpoint.
"""

from dataclasses import replace
from typing import Optional

from .assets import HvacAsset
from .base import ExogenousInputs, StepStatus, Transition
from .commands import HvacCommand


def active_setpoint(asset: HvacAsset, command: Optional[HvacCommand], status: StepStatus) -> float:
    """Setpoint in force this tick.

    An honoured command shifts the preferred setpoint, an ignored command
    keeps whatever setpoint was already in force, and no command at all
    releases the unit back to its preferred setpoint.
    """
    if status == StepStatus.APPLIED and command is not None:
        return asset.params.pref_setpoint_f + command.delta_setpoint_f
    if status == StepStatus.NOT_COMPLIED:
        return asset.state.setpoint_f
    return asset.params.pref_setpoint_f


def thermostat(hvac_on: bool, tin_f: float, setpoint_f: float, deadband_f: float, cooling: bool) -> bool:
    if cooling:
        if tin_f > setpoint_f + deadband_f:
            return True
        if tin_f < setpoint_f - deadband_f:
            return False
    else:
        if tin_f < setpoint_f - deadband_f:
            return True
        if tin_f > setpoint_f + deadband_f:
            return False
    return hvac_on


def comfort_violated(asset: HvacAsset, tin_f: float) -> bool:
    if asset.params.is_cooling:
        return tin_f > asset.params.comfort_max_f
    return tin_f < asset.params.comfort_min_f


def step_hvac(asset: HvacAsset, command: Optional[HvacCommand], status: StepStatus,
              drift: float, inputs: ExogenousInputs) -> Transition:
    params, state = asset.params, asset.state

    setpoint = active_setpoint(asset, command, status)
    tin = state.tin_f + params.alpha * (inputs.outdoor_temp_f - state.tin_f)
    if state.hvac_on:
        tin += params.beta

    hvac_on = thermostat(state.hvac_on, tin, setpoint, params.deadband_f, params.is_cooling)
    dropped = comfort_violated(asset, tin)

    new_state = replace(
        state,
        tin_f=tin,
        hvac_on=hvac_on,
        setpoint_f=setpoint,
        dropped=dropped,
        baseline_drift=drift,
    )
    if dropped:
        return Transition(new_state, 0.0)

    baseline_kw = params.hvac_kw * (1 + state.baseline_bias + drift)
    actual_kw = params.hvac_kw if hvac_on else 0.0
    return Transition(new_state, baseline_kw - actual_kw)
