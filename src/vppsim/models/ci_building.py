"""
Commercial and industrial building model.

HVAC shed availability decays exponentially with accumulated fatigue;
sustained shedding past a fatigue of 2 makes the building drop out of the
event. A curtailable process load can be toggled a limited number of times,
and the first toggle is only allowed outside business hours.
"""

from dataclasses import replace
import math
from typing import Optional

from .assets import CiBuildingAsset
from .base import ExogenousInputs, StepStatus, Transition
from .commands import CiBuildingCommand

FATIGUE_DROP_THRESHOLD = 2.0


def available_shed_kw(asset: CiBuildingAsset) -> float:
    return asset.params.smax_hvac_kw * math.exp(-asset.params.fatigue_k * asset.state.fatigue)


def next_fatigue(asset: CiBuildingAsset, shed_kw: float) -> float:
    params = asset.params
    ratio = shed_kw / params.smax_hvac_kw if params.smax_hvac_kw > 0 else 0.0
    return max(0.0, asset.state.fatigue + params.fatigue_a * ratio - params.fatigue_b * (1 - ratio))


def toggle_allowed(asset: CiBuildingAsset, hour_of_day: float) -> bool:
    used = asset.state.process_toggles_used
    if used >= asset.params.max_process_toggles:
        return False
    return not asset.params.business_hours.contains(hour_of_day) or used > 0


def step_ci_building(asset: CiBuildingAsset, command: Optional[CiBuildingCommand], status: StepStatus,
                     drift: float, inputs: ExogenousInputs) -> Transition:
    params, state = asset.params, asset.state

    target_shed_kw = 0.0
    target_process_on = state.process_on
    if status == StepStatus.APPLIED and command is not None:
        target_shed_kw = max(0.0, command.hvac_shed_kw)
        target_process_on = command.process_on

    shed_kw = min(target_shed_kw, available_shed_kw(asset))
    fatigue = next_fatigue(asset, shed_kw)

    if fatigue > FATIGUE_DROP_THRESHOLD:
        dropped = replace(state, hvac_shed_kw=shed_kw, fatigue=fatigue, dropped=True, baseline_drift=drift)
        return Transition(dropped, 0.0)

    process_on = state.process_on
    toggles_used = state.process_toggles_used
    if target_process_on != process_on and toggle_allowed(asset, inputs.hour_of_day):
        process_on = target_process_on
        toggles_used += 1

    new_state = replace(
        state,
        hvac_shed_kw=shed_kw,
        fatigue=fatigue,
        process_on=process_on,
        process_toggles_used=toggles_used,
        baseline_drift=drift,
    )
    curtailed_kw = 0.0 if process_on else params.process_load_kw
    return Transition(new_state, shed_kw + curtailed_kw)
