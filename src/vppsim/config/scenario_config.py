"""
Scenario configuration: the event window, weather, target and the
stochastic behaviour parameters shared by every asset.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .base import BaseConfig, ConfigValidationResult
from ..models.assets import Asset, asset_from_dict
from ..models.base import TIMESTEP_MINUTES

DEFAULT_OUTDOOR_TEMP_F = 75.0
SUPPORTED_OBJECTIVE_TYPES = ["kw_target"]


@dataclass
class WeatherConfig:
    outdoor_temp_f: List[float] = field(default_factory=list)


@dataclass
class TargetObjectiveConfig:
    """Power reduction target for the event."""
    type: str = "kw_target"
    target_kw: Optional[float] = None
    target_profile_kw: Optional[List[float]] = None  # per-tick override

    def validate(self) -> ConfigValidationResult:
        result = ConfigValidationResult(is_valid=True)

        if self.type not in SUPPORTED_OBJECTIVE_TYPES:
            result.add_error(f"Unsupported objective type: {self.type}")

        if self.target_kw is not None and self.target_kw < 0:
            result.add_error(f"Target must be >= 0 kW, got {self.target_kw}")

        if self.target_profile_kw and any(value < 0 for value in self.target_profile_kw):
            result.add_error("Target profile values must be >= 0 kW")

        if self.target_kw is None and not self.target_profile_kw:
            result.add_warning("No target set; every tick will target 0 kW")

        return result


@dataclass
class BaselineErrorConfig:
    """Per-device baseline bias and AR(1) drift parameters."""
    sigma_bias: float = 0.03
    sigma_drift: float = 0.01
    rho: float = 0.8

    def validate(self) -> ConfigValidationResult:
        result = ConfigValidationResult(is_valid=True)

        if self.sigma_bias < 0 or self.sigma_drift < 0:
            result.add_error("Baseline error standard deviations must be >= 0")

        if not 0 <= self.rho <= 1:
            result.add_error(f"Drift persistence rho must be within [0, 1], got {self.rho}")

        return result


@dataclass
class ScenarioConfig(BaseConfig):
    """Event-level scenario settings."""
    start_time: str = "2024-07-15T14:00:00-05:00"  # ISO 8601
    timesteps: int = 48
    weather: WeatherConfig = field(default_factory=WeatherConfig)
    objective: TargetObjectiveConfig = field(default_factory=TargetObjectiveConfig)
    baseline_error: BaselineErrorConfig = field(default_factory=BaselineErrorConfig)
    measurement_noise_pct: float = 0.05  # uniform ±pct
    noncompliance_probability: float = 0.1

    @property
    def start_datetime(self) -> datetime:
        return datetime.fromisoformat(self.start_time.replace("Z", "+00:00"))

    @property
    def start_hour(self) -> float:
        start = self.start_datetime
        return start.hour + start.minute / 60.0

    def time_at(self, tick: int) -> datetime:
        return self.start_datetime + timedelta(minutes=TIMESTEP_MINUTES * tick)

    def target_for_tick(self, tick: int) -> float:
        profile = self.objective.target_profile_kw
        if profile and 0 <= tick < len(profile):
            return float(profile[tick])
        if self.objective.target_kw is not None:
            return float(self.objective.target_kw)
        return 0.0

    def outdoor_temp_for_tick(self, tick: int) -> float:
        temps = self.weather.outdoor_temp_f
        if 0 <= tick < len(temps):
            return float(temps[tick])
        return DEFAULT_OUTDOOR_TEMP_F

    def validate(self) -> ConfigValidationResult:
        """Validate scenario settings."""
        result = ConfigValidationResult(is_valid=True)

        try:
            self.start_datetime
        except (TypeError, ValueError):
            result.add_error(f"start_time is not ISO 8601: {self.start_time!r}")

        if self.timesteps < 0:
            result.add_error(f"Timesteps must be >= 0, got {self.timesteps}")

        if self.weather.outdoor_temp_f and len(self.weather.outdoor_temp_f) < self.timesteps:
            result.add_warning(
                f"Outdoor temperature series covers {len(self.weather.outdoor_temp_f)} of "
                f"{self.timesteps} ticks; {DEFAULT_OUTDOOR_TEMP_F}°F is used beyond it"
            )

        if not 0 <= self.measurement_noise_pct < 1:
            result.add_error(f"Measurement noise must be within [0, 1), got {self.measurement_noise_pct}")

        if not 0 <= self.noncompliance_probability <= 1:
            result.add_error(
                f"Noncompliance probability must be within [0, 1], got {self.noncompliance_probability}"
            )

        result.extend(self.objective.validate(), "objective")
        result.extend(self.baseline_error.validate(), "baseline_error")
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the nested mapping used by scenario generators."""
        return {
            "start_time": self.start_time,
            "timesteps": self.timesteps,
            "weather": {"outdoor_temp_f": list(self.weather.outdoor_temp_f)},
            "objective": {
                "type": self.objective.type,
                "target_kw": self.objective.target_kw,
                "target_profile_kw": self.objective.target_profile_kw,
            },
            "baseline_error": {
                "sigma_bias": self.baseline_error.sigma_bias,
                "sigma_drift": self.baseline_error.sigma_drift,
                "rho": self.baseline_error.rho,
            },
            "measurement_noise": {"pct_uniform": self.measurement_noise_pct},
            "noncompliance": {"probability": self.noncompliance_probability},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScenarioConfig':
        """Create from the nested mapping used by scenario generators."""
        objective_data = data.get("objective", {})
        baseline_data = data.get("baseline_error", {})
        return cls(
            start_time=data.get("start_time", "2024-07-15T14:00:00-05:00"),
            timesteps=data.get("timesteps", 48),
            weather=WeatherConfig(
                outdoor_temp_f=list(data.get("weather", {}).get("outdoor_temp_f", []))
            ),
            objective=TargetObjectiveConfig(
                type=objective_data.get("type", "kw_target"),
                target_kw=objective_data.get("target_kw"),
                target_profile_kw=objective_data.get("target_profile_kw"),
            ),
            baseline_error=BaselineErrorConfig(
                sigma_bias=baseline_data.get("sigma_bias", 0.03),
                sigma_drift=baseline_data.get("sigma_drift", 0.01),
                rho=baseline_data.get("rho", 0.8),
            ),
            measurement_noise_pct=data.get("measurement_noise", {}).get("pct_uniform", 0.05),
            noncompliance_probability=data.get("noncompliance", {}).get("probability", 0.1),
        )


@dataclass(frozen=True)
class Scenario:
    """Immutable scenario input: configuration plus the initial portfolio."""
    config: ScenarioConfig
    assets: Tuple[Asset, ...]

    def __init__(self, config: ScenarioConfig, assets: Sequence[Asset]):
        object.__setattr__(self, "config", config)
        object.__setattr__(self, "assets", tuple(assets))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Scenario':
        """Build from ``{"config": {...}, "assets": [...]}``."""
        return cls(
            config=ScenarioConfig.from_dict(data.get("config", {})),
            assets=[asset_from_dict(asset) for asset in data.get("assets", [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "assets": [asset.to_dict() for asset in self.assets],
        }
