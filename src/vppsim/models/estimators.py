"""
Capacity and risk estimators shared by the dispatch engine.

These are budgeting heuristics: they tell the engine roughly how much load
reduction an asset can offer right now and how likely it is to fall out of
the event. The physical models remain the ground truth for delivered power.
"""

from dataclasses import dataclass
from typing import Callable, Dict

from .assets import (
    Asset, BatteryAsset, CiBuildingAsset, EvAsset, FleetSiteAsset, HvacAsset,
)
from .base import AssetType, check_exhaustive, clamp
from .battery import max_discharge_kw
from .ci_building import FATIGUE_DROP_THRESHOLD, available_shed_kw
from .fleet import BASELINE_UTILIZATION

DEFAULT_DROP_RISK = 0.2
HVAC_COMFORT_MARGIN_F = 4.0


# --- Available capacity -------------------------------------------------------

def _hvac_capacity(asset: HvacAsset) -> float:
    return asset.params.hvac_kw


def _battery_capacity(asset: BatteryAsset) -> float:
    return max_discharge_kw(asset)


def _ev_capacity(asset: EvAsset) -> float:
    if asset.state.override_active or not asset.state.plugged:
        return 0.0
    return asset.params.p_max_kw


def _fleet_capacity(asset: FleetSiteAsset) -> float:
    return asset.params.u_site_max_kw * BASELINE_UTILIZATION


def _ci_capacity(asset: CiBuildingAsset) -> float:
    process_kw = asset.params.process_load_kw if asset.state.process_on else 0.0
    return available_shed_kw(asset) + process_kw


CAPACITY_ESTIMATORS: Dict[AssetType, Callable[[Asset], float]] = {
    AssetType.HVAC_RESI: _hvac_capacity,
    AssetType.BATTERY_RESI: _battery_capacity,
    AssetType.EV_RESI: _ev_capacity,
    AssetType.FLEET_SITE: _fleet_capacity,
    AssetType.CI_BUILDING: _ci_capacity,
}
check_exhaustive(CAPACITY_ESTIMATORS, "CAPACITY_ESTIMATORS")


def estimate_capacity(asset: Asset) -> float:
    """Load reduction (kW) the asset could plausibly offer this tick."""
    if asset.dropped:
        return 0.0
    return max(0.0, CAPACITY_ESTIMATORS[asset.asset_type](asset))


# --- Margins to limits ----------------------------------------------------------

def hvac_comfort_margin(asset: HvacAsset) -> float:
    """Degrees left before the comfort limit is crossed."""
    if asset.params.is_cooling:
        return asset.params.comfort_max_f - asset.state.tin_f
    return asset.state.tin_f - asset.params.comfort_min_f


def battery_soc_buffer(asset: BatteryAsset) -> float:
    """Fraction of usable energy above the reserve, 0-1."""
    usable = 1.0 - asset.params.soc_reserve
    if usable <= 0:
        return 0.0
    return clamp((asset.state.soc - asset.params.soc_reserve) / usable, 0.0, 1.0)


def ev_energy_needed(asset: EvAsset) -> float:
    return max(0.0, asset.params.e_req_kwh - asset.state.e_kwh)


def soc_buffer(asset: Asset) -> float:
    """State-of-charge style buffer for storage-like assets, 0 for the rest."""
    if isinstance(asset, BatteryAsset):
        return battery_soc_buffer(asset)
    if isinstance(asset, EvAsset) and asset.params.e_req_kwh > 0:
        return clamp(asset.state.e_kwh / asset.params.e_req_kwh, 0.0, 1.0)
    return 0.0


# --- Drop risk --------------------------------------------------------------------

def _hvac_base_risk(asset: HvacAsset) -> float:
    return 1.0 - hvac_comfort_margin(asset) / HVAC_COMFORT_MARGIN_F


def _battery_base_risk(asset: BatteryAsset) -> float:
    return (1.0 - battery_soc_buffer(asset)) * 0.5


def _ev_base_risk(asset: EvAsset) -> float:
    if asset.state.override_active:
        return 1.0
    needed = ev_energy_needed(asset)
    if needed > 20:
        return 0.6
    if needed > 10:
        return 0.3
    return 0.1


def _fleet_base_risk(asset: FleetSiteAsset) -> float:
    return DEFAULT_DROP_RISK


def _ci_base_risk(asset: CiBuildingAsset) -> float:
    return asset.state.fatigue / FATIGUE_DROP_THRESHOLD


BASE_RISK_ESTIMATORS: Dict[AssetType, Callable[[Asset], float]] = {
    AssetType.HVAC_RESI: _hvac_base_risk,
    AssetType.BATTERY_RESI: _battery_base_risk,
    AssetType.EV_RESI: _ev_base_risk,
    AssetType.FLEET_SITE: _fleet_base_risk,
    AssetType.CI_BUILDING: _ci_base_risk,
}
check_exhaustive(BASE_RISK_ESTIMATORS, "BASE_RISK_ESTIMATORS")


def estimate_drop_risk(asset: Asset, conservation_factor: float = 0.5) -> float:
    """Probability-like drop risk in [0, 1].

    The base risk grows as the asset approaches its limit; a more
    conservative risk posture inflates it (0.5 leaves it unchanged).
    """
    if asset.dropped:
        return 1.0
    base = BASE_RISK_ESTIMATORS[asset.asset_type](asset)
    return clamp(base * (0.5 + conservation_factor), 0.0, 1.0)


def comfort_cost(asset: Asset) -> float:
    """Marginal discomfort of dispatching the asset, 0 (free) to 1 (painful)."""
    if isinstance(asset, HvacAsset):
        return clamp(1.0 - hvac_comfort_margin(asset) / HVAC_COMFORT_MARGIN_F, 0.0, 1.0)
    if isinstance(asset, BatteryAsset):
        return 0.1
    if isinstance(asset, EvAsset):
        if asset.params.e_req_kwh <= 0:
            return 0.0
        return clamp(ev_energy_needed(asset) / asset.params.e_req_kwh, 0.0, 1.0)
    if isinstance(asset, CiBuildingAsset):
        return clamp(asset.state.fatigue / FATIGUE_DROP_THRESHOLD, 0.0, 1.0)
    return 0.3


# --- Dispatch intensity -----------------------------------------------------------

@dataclass(frozen=True)
class IntensityMapping:
    """Linear maps from a 0-100 intensity setting to engine multipliers."""
    priority_range: tuple = (0.5, 1.5)
    utilization_range: tuple = (0.5, 1.0)

    @staticmethod
    def _interpolate(bounds: tuple, intensity: float) -> float:
        low, high = bounds
        return low + (high - low) * clamp(intensity, 0.0, 100.0) / 100.0

    def priority_multiplier(self, intensity: float) -> float:
        return self._interpolate(self.priority_range, intensity)

    def utilization_multiplier(self, intensity: float) -> float:
        return self._interpolate(self.utilization_range, intensity)


DEFAULT_INTENSITY = 50.0
CI_PROCESS_CURTAIL_INTENSITY = 70.0

INTENSITY_MAPPINGS: Dict[AssetType, IntensityMapping] = {
    asset_type: IntensityMapping() for asset_type in AssetType
}
check_exhaustive(INTENSITY_MAPPINGS, "INTENSITY_MAPPINGS")


def priority_multiplier(asset_type: AssetType, intensity: float) -> float:
    return INTENSITY_MAPPINGS[asset_type].priority_multiplier(intensity)


def utilization_multiplier(asset_type: AssetType, intensity: float) -> float:
    return INTENSITY_MAPPINGS[asset_type].utilization_multiplier(intensity)
