"""
Command synthesis: turn an ordered list of candidates into per-asset commands
until the working target is covered.
"""

from typing import Callable, Dict, List, Sequence, Tuple

from .base import Candidate
from ..config.strategy_config import StrategyConfig
from ..models.assets import (
    Asset, BatteryAsset, CiBuildingAsset, EvAsset, FleetSiteAsset, HvacAsset,
)
from ..models.base import AssetType, check_exhaustive, clamp, round_half_up
from ..models.ci_building import available_shed_kw
from ..models.commands import (
    BatteryCommand, CiBuildingCommand, Command, DispatchCommand, EvCommand,
    FleetCommand, HvacCommand,
)
from ..models.estimators import CI_PROCESS_CURTAIL_INTENSITY, utilization_multiplier
from ..models.fleet import BASELINE_UTILIZATION

MAX_SETPOINT_SHIFT_F = 2

# (asset, requested kW, utilisation, intensity) -> (command, estimated kW)
CommandBuilder = Callable[[Asset, float, float, float], Tuple[Command, float]]


def _hvac_command(asset: HvacAsset, request_kw: float, utilization: float,
                  intensity: float) -> Tuple[Command, float]:
    shift = clamp(round_half_up(MAX_SETPOINT_SHIFT_F * utilization), -MAX_SETPOINT_SHIFT_F, MAX_SETPOINT_SHIFT_F)
    if not asset.params.is_cooling:
        shift = -shift
    return HvacCommand(delta_setpoint_f=shift), min(request_kw, asset.params.hvac_kw * utilization)


def _battery_command(asset: BatteryAsset, request_kw: float, utilization: float,
                     intensity: float) -> Tuple[Command, float]:
    return BatteryCommand(power_kw=request_kw), request_kw


def _ev_command(asset: EvAsset, request_kw: float, utilization: float,
                intensity: float) -> Tuple[Command, float]:
    reduction = min(request_kw, asset.params.p_max_kw)
    return EvCommand(power_kw=asset.params.p_max_kw - reduction), reduction


def _fleet_command(asset: FleetSiteAsset, request_kw: float, utilization: float,
                   intensity: float) -> Tuple[Command, float]:
    baseline_kw = asset.params.u_site_max_kw * BASELINE_UTILIZATION
    reduction = min(request_kw, baseline_kw)
    return FleetCommand(site_power_cap_kw=max(0.0, baseline_kw - reduction)), reduction


def _ci_command(asset: CiBuildingAsset, request_kw: float, utilization: float,
                intensity: float) -> Tuple[Command, float]:
    shed_kw = min(request_kw, available_shed_kw(asset))
    curtail = asset.state.process_on and intensity > CI_PROCESS_CURTAIL_INTENSITY
    estimate = shed_kw + (asset.params.process_load_kw if curtail else 0.0)
    return CiBuildingCommand(hvac_shed_kw=shed_kw, process_on=not curtail), estimate


COMMAND_BUILDERS: Dict[AssetType, CommandBuilder] = {
    AssetType.HVAC_RESI: _hvac_command,
    AssetType.BATTERY_RESI: _battery_command,
    AssetType.EV_RESI: _ev_command,
    AssetType.FLEET_SITE: _fleet_command,
    AssetType.CI_BUILDING: _ci_command,
}
check_exhaustive(COMMAND_BUILDERS, "COMMAND_BUILDERS")


def synthesize_commands(ordered: Sequence[Candidate], target_kw: float,
                        strategy: StrategyConfig) -> Tuple[List[DispatchCommand], float]:
    """Walk the ordered candidates, commanding each until the target is covered.

    Returns the commands and the engine's own estimate of the reduction they
    buy. The estimate only budgets the walk; delivered power comes from the
    asset models.
    """
    commands = []
    remaining = target_kw
    estimated_total = 0.0

    for candidate in ordered:
        if remaining <= 0:
            break
        asset_type = candidate.asset.asset_type
        intensity = strategy.intensity_for(asset_type)
        utilization = utilization_multiplier(asset_type, intensity)
        usable_kw = candidate.capacity_kw * utilization
        request_kw = min(usable_kw, remaining)
        if request_kw <= 0:
            continue

        command, estimate = COMMAND_BUILDERS[asset_type](candidate.asset, request_kw, utilization, intensity)
        commands.append(DispatchCommand(candidate.asset_id, command))
        remaining -= estimate
        estimated_total += estimate

    return commands, estimated_total
