"""Dispatch commands, one variant per asset type."""

from dataclasses import dataclass
from typing import ClassVar, Union

from .base import AssetType


@dataclass(frozen=True)
class HvacCommand:
    delta_setpoint_f: float  # offset from the preferred setpoint

    asset_type: ClassVar[AssetType] = AssetType.HVAC_RESI


@dataclass(frozen=True)
class BatteryCommand:
    power_kw: float  # positive = discharge, negative = charge

    asset_type: ClassVar[AssetType] = AssetType.BATTERY_RESI


@dataclass(frozen=True)
class EvCommand:
    power_kw: float  # requested charging rate

    asset_type: ClassVar[AssetType] = AssetType.EV_RESI


@dataclass(frozen=True)
class FleetCommand:
    site_power_cap_kw: float

    asset_type: ClassVar[AssetType] = AssetType.FLEET_SITE


@dataclass(frozen=True)
class CiBuildingCommand:
    hvac_shed_kw: float
    process_on: bool = True

    asset_type: ClassVar[AssetType] = AssetType.CI_BUILDING


Command = Union[HvacCommand, BatteryCommand, EvCommand, FleetCommand, CiBuildingCommand]


@dataclass(frozen=True)
class DispatchCommand:
    """A command addressed to one asset."""
    asset_id: str
    command: Command

    @property
    def asset_type(self) -> AssetType:
        return self.command.asset_type
