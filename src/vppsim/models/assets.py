"""
Asset definitions: immutable parameters plus per-tick state for each
resource type. Assets are replaced, never mutated, when a tick advances.
"""

from dataclasses import dataclass, asdict, field, replace
from typing import Any, ClassVar, Dict, Tuple, Type

from .base import AssetType


# --- Residential HVAC ---------------------------------------------------------

@dataclass(frozen=True)
class HvacParams:
    """Thermal and electrical parameters of a residential HVAC unit."""
    mode: str  # "cooling" or "heating"
    pref_setpoint_f: float
    comfort_max_f: float
    comfort_min_f: float
    alpha: float  # envelope leakage per tick
    beta: float  # °F per tick while running, negative when cooling
    hvac_kw: float
    deadband_f: float = 0.5

    @property
    def is_cooling(self) -> bool:
        return self.mode == "cooling"


@dataclass(frozen=True)
class HvacState:
    tin_f: float
    hvac_on: bool
    setpoint_f: float
    dropped: bool = False
    baseline_bias: float = 0.0
    baseline_drift: float = 0.0


# --- Residential battery ------------------------------------------------------

@dataclass(frozen=True)
class BatteryParams:
    """Energy and power limits of a home battery."""
    e_kwh: float
    p_dis_kw: float
    p_ch_kw: float
    soc_reserve: float = 0.2


@dataclass(frozen=True)
class BatteryState:
    soc: float  # 0-1
    dropped: bool = False
    baseline_bias: float = 0.0
    baseline_drift: float = 0.0


# --- Residential EV charger ---------------------------------------------------

@dataclass(frozen=True)
class EvParams:
    """Charger rating and the driver's session window."""
    charger_level: str  # "L1" or "L2"
    p_max_kw: float
    e_req_kwh: float
    e_capacity_kwh: float
    t_arrival: int  # tick index
    t_depart: int  # tick index


@dataclass(frozen=True)
class EvState:
    e_kwh: float
    plugged: bool = False
    override_active: bool = False
    dropped: bool = False
    baseline_bias: float = 0.0
    baseline_drift: float = 0.0


# --- Commercial fleet site ----------------------------------------------------

@dataclass(frozen=True)
class FleetVehicle:
    id: str
    p_max_kw: float
    e_req_kwh: float
    e_capacity_kwh: float
    t_arrival: int
    t_depart: int


@dataclass(frozen=True)
class FleetVehicleState:
    e_kwh: float
    plugged: bool = False


@dataclass(frozen=True)
class FleetSiteParams:
    u_site_max_kw: float
    vehicles: Tuple[FleetVehicle, ...] = ()


@dataclass(frozen=True)
class FleetSiteState:
    vehicle_state: Dict[str, FleetVehicleState] = field(default_factory=dict)
    dropped: bool = False
    baseline_bias: float = 0.0
    baseline_drift: float = 0.0


# --- C&I building -------------------------------------------------------------

@dataclass(frozen=True)
class BusinessHours:
    start_hour: float = 8
    end_hour: float = 18

    def contains(self, hour: float) -> bool:
        return self.start_hour <= hour < self.end_hour


@dataclass(frozen=True)
class CiBuildingParams:
    """HVAC shed capability, fatigue dynamics and the curtailable process."""
    smax_hvac_kw: float
    fatigue_k: float
    fatigue_a: float
    fatigue_b: float
    process_load_kw: float
    max_process_toggles: int
    business_hours: BusinessHours = field(default_factory=BusinessHours)


@dataclass(frozen=True)
class CiBuildingState:
    fatigue: float = 0.0
    hvac_shed_kw: float = 0.0
    process_on: bool = True
    process_toggles_used: int = 0
    dropped: bool = False
    baseline_bias: float = 0.0
    baseline_drift: float = 0.0


# --- Asset variants -----------------------------------------------------------

@dataclass(frozen=True)
class Asset:
    """Common behaviour of every asset variant."""
    id: str

    asset_type: ClassVar[AssetType]
    params_class: ClassVar[Type]
    state_class: ClassVar[Type]

    @property
    def dropped(self) -> bool:
        return self.state.dropped

    def with_state(self, state: Any) -> 'Asset':
        return replace(self, state=state)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.asset_type.value,
            "params": asdict(self.params),
            "state": asdict(self.state),
        }

    @classmethod
    def _params_from_dict(cls, data: Dict[str, Any]) -> Any:
        return cls.params_class(**data)

    @classmethod
    def _state_from_dict(cls, data: Dict[str, Any]) -> Any:
        return cls.state_class(**data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Asset':
        return cls(
            id=data["id"],
            params=cls._params_from_dict(data["params"]),
            state=cls._state_from_dict(data["state"]),
        )


@dataclass(frozen=True)
class HvacAsset(Asset):
    params: HvacParams
    state: HvacState

    asset_type: ClassVar[AssetType] = AssetType.HVAC_RESI
    params_class: ClassVar[Type] = HvacParams
    state_class: ClassVar[Type] = HvacState


@dataclass(frozen=True)
class BatteryAsset(Asset):
    params: BatteryParams
    state: BatteryState

    asset_type: ClassVar[AssetType] = AssetType.BATTERY_RESI
    params_class: ClassVar[Type] = BatteryParams
    state_class: ClassVar[Type] = BatteryState


@dataclass(frozen=True)
class EvAsset(Asset):
    params: EvParams
    state: EvState

    asset_type: ClassVar[AssetType] = AssetType.EV_RESI
    params_class: ClassVar[Type] = EvParams
    state_class: ClassVar[Type] = EvState


@dataclass(frozen=True)
class FleetSiteAsset(Asset):
    params: FleetSiteParams
    state: FleetSiteState

    asset_type: ClassVar[AssetType] = AssetType.FLEET_SITE
    params_class: ClassVar[Type] = FleetSiteParams
    state_class: ClassVar[Type] = FleetSiteState

    @classmethod
    def _params_from_dict(cls, data: Dict[str, Any]) -> FleetSiteParams:
        return FleetSiteParams(
            u_site_max_kw=data["u_site_max_kw"],
            vehicles=tuple(FleetVehicle(**v) for v in data.get("vehicles", [])),
        )

    @classmethod
    def _state_from_dict(cls, data: Dict[str, Any]) -> FleetSiteState:
        fields = dict(data)
        fields["vehicle_state"] = {
            vehicle_id: FleetVehicleState(**vehicle)
            for vehicle_id, vehicle in data.get("vehicle_state", {}).items()
        }
        return FleetSiteState(**fields)


@dataclass(frozen=True)
class CiBuildingAsset(Asset):
    params: CiBuildingParams
    state: CiBuildingState

    asset_type: ClassVar[AssetType] = AssetType.CI_BUILDING
    params_class: ClassVar[Type] = CiBuildingParams
    state_class: ClassVar[Type] = CiBuildingState

    @classmethod
    def _params_from_dict(cls, data: Dict[str, Any]) -> CiBuildingParams:
        fields = dict(data)
        fields["business_hours"] = BusinessHours(**data.get("business_hours", {}))
        return CiBuildingParams(**fields)


ASSET_CLASSES: Dict[AssetType, Type[Asset]] = {
    AssetType.HVAC_RESI: HvacAsset,
    AssetType.BATTERY_RESI: BatteryAsset,
    AssetType.EV_RESI: EvAsset,
    AssetType.FLEET_SITE: FleetSiteAsset,
    AssetType.CI_BUILDING: CiBuildingAsset,
}


def asset_from_dict(data: Dict[str, Any]) -> Asset:
    """Build a typed asset from its mapping form (``type`` selects the variant)."""
    return ASSET_CLASSES[AssetType(data["type"])].from_dict(data)
