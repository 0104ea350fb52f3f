"""
Per-asset state transition models for the VPP dispatch simulator.

This package provides:
- Typed asset variants (residential HVAC, battery, EV, fleet depot, C&I building)
- Matching dispatch commands
- A single ``update_asset`` transition with seeded stochastic behaviour
- Capacity and drop-risk estimators shared with the dispatch engine
"""

from .base import (
    TIMESTEP_MINUTES,
    TIMESTEP_HOURS,
    AssetType,
    StepStatus,
    ExogenousInputs,
    StepResult,
)
from .assets import (
    Asset,
    HvacParams, HvacState, HvacAsset,
    BatteryParams, BatteryState, BatteryAsset,
    EvParams, EvState, EvAsset,
    FleetVehicle, FleetVehicleState, FleetSiteParams, FleetSiteState, FleetSiteAsset,
    BusinessHours, CiBuildingParams, CiBuildingState, CiBuildingAsset,
    asset_from_dict,
)
from .commands import (
    Command,
    HvacCommand,
    BatteryCommand,
    EvCommand,
    FleetCommand,
    CiBuildingCommand,
    DispatchCommand,
)
from .physics import update_asset
from .estimators import (
    DEFAULT_INTENSITY,
    estimate_capacity,
    estimate_drop_risk,
    comfort_cost,
    soc_buffer,
    priority_multiplier,
    utilization_multiplier,
)

__all__ = [
    "TIMESTEP_MINUTES",
    "TIMESTEP_HOURS",
    "AssetType",
    "StepStatus",
    "ExogenousInputs",
    "StepResult",

    # Assets
    "Asset",
    "HvacParams", "HvacState", "HvacAsset",
    "BatteryParams", "BatteryState", "BatteryAsset",
    "EvParams", "EvState", "EvAsset",
    "FleetVehicle", "FleetVehicleState", "FleetSiteParams", "FleetSiteState", "FleetSiteAsset",
    "BusinessHours", "CiBuildingParams", "CiBuildingState", "CiBuildingAsset",
    "asset_from_dict",

    # Commands
    "Command",
    "HvacCommand",
    "BatteryCommand",
    "EvCommand",
    "FleetCommand",
    "CiBuildingCommand",
    "DispatchCommand",

    # Transition and estimators
    "update_asset",
    "DEFAULT_INTENSITY",
    "estimate_capacity",
    "estimate_drop_risk",
    "comfort_cost",
    "soc_buffer",
    "priority_multiplier",
    "utilization_multiplier",
]
