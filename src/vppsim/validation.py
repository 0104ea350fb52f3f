"""Validation utilities for scenarios and assets."""

from typing import Any, Optional, Union, Type, Tuple

from .exceptions import ValidationError, ValidationTypeError, ValidationRangeError
from .models.assets import (
    Asset, BatteryAsset, CiBuildingAsset, EvAsset, FleetSiteAsset, HvacAsset,
)

class Validator:
    """Base validator class."""

    @staticmethod
    def validate_type(value: Any, expected_type: Union[Type, Tuple[Type, ...]]) -> None:
        """Validate value type."""
        if not isinstance(value, expected_type) or isinstance(value, bool) and expected_type != bool:
            names = getattr(expected_type, "__name__", None) or "/".join(t.__name__ for t in expected_type)
            raise ValidationTypeError(
                f"Expected type {names}, got {type(value).__name__}"
            )

    @staticmethod
    def validate_range(
        value: Union[int, float],
        min_value: Optional[Union[int, float]] = None,
        max_value: Optional[Union[int, float]] = None
    ) -> None:
        """Validate numeric range."""
        if min_value is not None and value < min_value:
            raise ValidationRangeError(f"Value {value} is below minimum {min_value}")

        if max_value is not None and value > max_value:
            raise ValidationRangeError(f"Value {value} exceeds maximum {max_value}")

    @staticmethod
    def validate_number(value: Any, min_value: Optional[float] = None,
                        max_value: Optional[float] = None) -> None:
        Validator.validate_type(value, (int, float))
        Validator.validate_range(value, min_value=min_value, max_value=max_value)

class AssetValidator(Validator):
    """Validator for asset parameters and initial state."""

    @classmethod
    def validate(cls, asset: Asset) -> None:
        """Validate one asset, prefixing any error with its id."""
        try:
            cls._validate_common(asset)
            if isinstance(asset, HvacAsset):
                cls._validate_hvac(asset)
            elif isinstance(asset, BatteryAsset):
                cls._validate_battery(asset)
            elif isinstance(asset, EvAsset):
                cls._validate_ev(asset)
            elif isinstance(asset, FleetSiteAsset):
                cls._validate_fleet(asset)
            elif isinstance(asset, CiBuildingAsset):
                cls._validate_ci_building(asset)
        except ValidationError as e:
            raise type(e)(f"Asset {asset.id}: {e}") from e

    @staticmethod
    def _validate_common(asset: Asset) -> None:
        if not asset.id or not isinstance(asset.id, str):
            raise ValidationError("Asset id must be a non-empty string")
        Validator.validate_type(asset.state.baseline_bias, (int, float))
        Validator.validate_type(asset.state.baseline_drift, (int, float))

    @staticmethod
    def _validate_hvac(asset: HvacAsset) -> None:
        params = asset.params
        if params.mode not in ("cooling", "heating"):
            raise ValidationError(f"HVAC mode must be 'cooling' or 'heating', got {params.mode!r}")
        if params.comfort_min_f >= params.comfort_max_f:
            raise ValidationRangeError("Comfort minimum must be below comfort maximum")
        Validator.validate_number(params.alpha, 0, 1)
        Validator.validate_number(params.hvac_kw, 0)
        Validator.validate_number(params.deadband_f, 0)

    @staticmethod
    def _validate_battery(asset: BatteryAsset) -> None:
        params = asset.params
        Validator.validate_number(params.e_kwh, 0)
        Validator.validate_number(params.p_dis_kw, 0)
        Validator.validate_number(params.p_ch_kw, 0)
        Validator.validate_number(params.soc_reserve, 0, 1)
        Validator.validate_number(asset.state.soc, params.soc_reserve, 1)

    @staticmethod
    def _validate_ev(asset: EvAsset) -> None:
        params = asset.params
        Validator.validate_number(params.p_max_kw, 0)
        Validator.validate_number(params.e_capacity_kwh, 0)
        Validator.validate_number(params.e_req_kwh, 0, params.e_capacity_kwh)
        Validator.validate_number(asset.state.e_kwh, 0, params.e_capacity_kwh)
        if params.t_depart < params.t_arrival:
            raise ValidationRangeError("EV departure precedes arrival")

    @staticmethod
    def _validate_fleet(asset: FleetSiteAsset) -> None:
        Validator.validate_number(asset.params.u_site_max_kw, 0)
        for vehicle in asset.params.vehicles:
            Validator.validate_number(vehicle.p_max_kw, 0)
            if vehicle.t_depart < vehicle.t_arrival:
                raise ValidationRangeError(f"Vehicle {vehicle.id} departs before it arrives")
            if vehicle.id not in asset.state.vehicle_state:
                raise ValidationError(f"Vehicle {vehicle.id} has no state")

    @staticmethod
    def _validate_ci_building(asset: CiBuildingAsset) -> None:
        params = asset.params
        Validator.validate_number(params.smax_hvac_kw, 0)
        Validator.validate_number(params.fatigue_k, 0)
        Validator.validate_number(params.process_load_kw, 0)
        Validator.validate_number(params.max_process_toggles, 0)
        Validator.validate_number(params.business_hours.start_hour, 0, 24)
        Validator.validate_number(params.business_hours.end_hour, 0, 24)
        Validator.validate_number(asset.state.fatigue, 0)

class ScenarioValidator(Validator):
    """Validator for a complete scenario."""

    @staticmethod
    def validate(scenario: Any) -> None:
        """Raise ValidationError when the scenario cannot be simulated."""
        result = scenario.config.validate()
        if not result.is_valid:
            raise ValidationError("Invalid scenario: " + "; ".join(result.errors))

        seen = set()
        for asset in scenario.assets:
            if asset.id in seen:
                raise ValidationError(f"Duplicate asset id: {asset.id}")
            seen.add(asset.id)
            AssetValidator.validate(asset)
