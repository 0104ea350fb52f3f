"""Commercial fleet depot model with urgency-weighted power sharing."""

from dataclasses import replace
from typing import Dict, Optional

from .assets import FleetSiteAsset, FleetVehicleState
from .base import ExogenousInputs, StepStatus, Transition, TIMESTEP_HOURS
from .commands import FleetCommand

BASELINE_UTILIZATION = 0.7


def allocate_site_power(asset: FleetSiteAsset, vehicle_state: Dict[str, FleetVehicleState],
                        site_cap_kw: float, tick: int) -> Dict[str, float]:
    """Share the site cap across vehicles that still need energy.

    Each vehicle's share is proportional to its urgency (remaining kWh over
    remaining hours, at least one tick) and capped at its own charger rating.
    """
    needy = [
        vehicle for vehicle in asset.params.vehicles
        if vehicle_state[vehicle.id].plugged
        and vehicle_state[vehicle.id].e_kwh < vehicle.e_req_kwh
        and tick < vehicle.t_depart
    ]
    if not needy:
        return {}

    urgencies = {}
    for vehicle in needy:
        remaining_kwh = vehicle.e_req_kwh - vehicle_state[vehicle.id].e_kwh
        remaining_h = max(1, vehicle.t_depart - tick) * TIMESTEP_HOURS
        urgencies[vehicle.id] = remaining_kwh / remaining_h
    total_urgency = sum(urgencies.values())

    allocation = {}
    for vehicle in needy:
        if total_urgency > 0:
            share = urgencies[vehicle.id] / total_urgency
        else:
            share = 1.0 / len(needy)
        allocation[vehicle.id] = min(vehicle.p_max_kw, share * site_cap_kw)
    return allocation


def step_fleet(asset: FleetSiteAsset, command: Optional[FleetCommand], status: StepStatus,
               drift: float, inputs: ExogenousInputs) -> Transition:
    params, state = asset.params, asset.state
    tick = inputs.tick

    vehicle_state = {}
    for vehicle in params.vehicles:
        current = state.vehicle_state.get(vehicle.id, FleetVehicleState(e_kwh=0.0))
        plugged = current.plugged or tick >= vehicle.t_arrival
        if tick >= vehicle.t_depart:
            plugged = False
        vehicle_state[vehicle.id] = replace(current, plugged=plugged)

    site_cap_kw = params.u_site_max_kw
    if status == StepStatus.APPLIED and command is not None:
        site_cap_kw = max(0.0, min(command.site_power_cap_kw, params.u_site_max_kw))

    allocation = allocate_site_power(asset, vehicle_state, site_cap_kw, tick)
    site_kw = 0.0
    for vehicle in params.vehicles:
        power_kw = allocation.get(vehicle.id, 0.0)
        if power_kw:
            current = vehicle_state[vehicle.id]
            e_kwh = min(current.e_kwh + power_kw * TIMESTEP_HOURS, vehicle.e_capacity_kwh)
            vehicle_state[vehicle.id] = replace(current, e_kwh=e_kwh)
            site_kw += power_kw

    new_state = replace(state, vehicle_state=vehicle_state, baseline_drift=drift)
    baseline_kw = params.u_site_max_kw * BASELINE_UTILIZATION * (1 + state.baseline_bias + drift)
    return Transition(new_state, baseline_kw - site_kw)
