"""
Single entry point for advancing any asset by one tick.

``update_asset`` is a pure function of its inputs apart from the draws it
takes from the injected random generator. The draw order per live asset is
fixed (noncompliance roll, drift innovation, measurement noise) so a seeded
run is reproducible.
"""

import logging
from typing import Callable, Dict, Optional
import numpy as np

from .assets import Asset
from .base import (
    AssetType, ExogenousInputs, StepResult, StepStatus, Transition,
    advance_drift, apply_measurement_noise, check_exhaustive, rolls_noncompliance,
)
from .battery import step_battery
from .ci_building import step_ci_building
from .commands import Command
from .ev import step_ev
from .fleet import step_fleet
from .hvac import step_hvac

logger = logging.getLogger("vppsim.models")

StepFunction = Callable[..., Transition]

STEP_FUNCTIONS: Dict[AssetType, StepFunction] = {
    AssetType.HVAC_RESI: step_hvac,
    AssetType.BATTERY_RESI: step_battery,
    AssetType.EV_RESI: step_ev,
    AssetType.FLEET_SITE: step_fleet,
    AssetType.CI_BUILDING: step_ci_building,
}
check_exhaustive(STEP_FUNCTIONS, "STEP_FUNCTIONS")


def update_asset(asset: Asset, command: Optional[Command], inputs: ExogenousInputs,
                 rng: np.random.RandomState) -> StepResult:
    """Apply a command (or none) and advance the asset's physics by one tick."""
    if asset.state.dropped:
        return StepResult(asset, 0.0, StepStatus.DROPPED)

    if command is None:
        status = StepStatus.NO_COMMAND
    elif command.asset_type != asset.asset_type:
        logger.warning(
            f"Rejected {type(command).__name__} for {asset.asset_type.value} asset {asset.id}"
        )
        status = StepStatus.INAPPLICABLE
        command = None
    else:
        status = StepStatus.APPLIED

    # One roll per live asset per tick, whether or not a command is pending
    if rolls_noncompliance(inputs.noncompliance_probability, rng) and status == StepStatus.APPLIED:
        status = StepStatus.NOT_COMPLIED

    drift = advance_drift(asset.state.baseline_drift, inputs.rho, inputs.sigma_drift, rng)
    transition = STEP_FUNCTIONS[asset.asset_type](asset, command, status, drift, inputs)
    updated = asset.with_state(transition.state)

    if transition.state.dropped:
        logger.debug(f"Asset {asset.id} dropped at tick {inputs.tick}")
        return StepResult(updated, 0.0, StepStatus.DROPPED)

    delta_kw = apply_measurement_noise(transition.raw_delta_kw, inputs.measurement_noise_pct, rng)
    return StepResult(updated, max(0.0, delta_kw), status)
