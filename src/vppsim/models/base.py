"""
Shared vocabulary for the per-asset state transition models.

Every asset type advances one tick at a time: a single noncompliance roll,
an AR(1) baseline drift update, the type-specific physics, and finally
uniform measurement noise on the reported power delta.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable
import numpy as np


TIMESTEP_MINUTES = 5
TIMESTEP_HOURS = TIMESTEP_MINUTES / 60.0
TICKS_PER_HOUR = 60 // TIMESTEP_MINUTES


class AssetType(str, Enum):
    """Kinds of distributed energy resources in a portfolio."""
    HVAC_RESI = "hvac_resi"
    BATTERY_RESI = "battery_resi"
    EV_RESI = "ev_resi"
    FLEET_SITE = "fleet_site"
    CI_BUILDING = "ci_building"


class StepStatus(Enum):
    """How a command was handled during a tick."""
    APPLIED = "applied"
    NOT_COMPLIED = "not_complied"
    NO_COMMAND = "no_command"
    INAPPLICABLE = "inapplicable"
    DROPPED = "dropped"


@dataclass(frozen=True)
class ExogenousInputs:
    """Per-tick inputs that come from the scenario rather than the asset."""
    tick: int
    outdoor_temp_f: float
    start_hour: float
    noncompliance_probability: float = 0.0
    sigma_drift: float = 0.0
    rho: float = 0.0
    measurement_noise_pct: float = 0.0

    @property
    def hour_of_day(self) -> float:
        return (self.start_hour + self.tick * TIMESTEP_HOURS) % 24


@dataclass(frozen=True)
class StepResult:
    """Outcome of advancing one asset by one tick."""
    asset: Any
    power_delta_kw: float
    status: StepStatus

    @property
    def dropped(self) -> bool:
        return self.asset.state.dropped


@dataclass(frozen=True)
class Transition:
    """Type-specific physics output before measurement noise is applied."""
    state: Any
    raw_delta_kw: float


def rolls_noncompliance(probability: float, rng: np.random.RandomState) -> bool:
    """Return True when the asset ignores its command this tick."""
    return rng.random_sample() < probability


def advance_drift(drift: float, rho: float, sigma_drift: float, rng: np.random.RandomState) -> float:
    """AR(1) update of the baseline drift term."""
    return rho * drift + (rng.random_sample() * 2 - 1) * sigma_drift


def apply_measurement_noise(value: float, pct: float, rng: np.random.RandomState) -> float:
    """Multiply a reading by 1 + U(-pct, pct)."""
    return value * (1 + (rng.random_sample() * 2 - 1) * pct)


def baseline_multiplier(state: Any) -> float:
    return 1 + state.baseline_bias + state.baseline_drift


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves moving away from zero."""
    return int(np.sign(value) * np.floor(abs(value) + 0.5))


def check_exhaustive(registry: Dict[AssetType, Callable], name: str,
                     members: Iterable[AssetType] = AssetType) -> None:
    """Fail at import time when a per-type registry misses an asset type."""
    missing = [member.value for member in members if member not in registry]
    if missing:
        raise TypeError(f"{name} has no handler for asset types: {missing}")
