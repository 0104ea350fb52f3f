"""
Run-level simulation configuration: difficulty, seeding, pacing and logging.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import logging

from .base import BaseConfig, ConfigValidationResult, ValidationLevel

MIN_SPEED = 0.5
MAX_SPEED = 10.0


@dataclass(frozen=True)
class DifficultySettings:
    """Scoring and behaviour knobs associated with a difficulty level."""
    target_mw: float
    noncompliance: float
    response_variability: float
    headroom_multiplier: float
    penalty_exponent: float
    over_performance_penalty_ratio: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "target_mw": self.target_mw,
            "noncompliance": self.noncompliance,
            "response_variability": self.response_variability,
            "headroom_multiplier": self.headroom_multiplier,
            "penalty_exponent": self.penalty_exponent,
            "over_performance_penalty_ratio": self.over_performance_penalty_ratio,
        }


DIFFICULTY_PRESETS: Dict[str, DifficultySettings] = {
    "easy": DifficultySettings(5, 0.05, 0.1, 4.0, 1.5, 0.3),
    "medium": DifficultySettings(50, 0.15, 0.25, 2.5, 2.0, 0.5),
    "hard": DifficultySettings(300, 0.25, 0.4, 1.5, 3.0, 0.7),
}


@dataclass
class SimulationConfig(BaseConfig):
    """Configuration for a simulation run."""
    difficulty: str = "medium"
    difficulty_overrides: Dict[str, float] = field(default_factory=dict)
    random_seed: Optional[int] = None
    base_step_seconds: float = 1.0  # wall-clock seconds per tick at 1x
    speed: float = 1.0
    log_level: str = "INFO"
    log_file: Optional[str] = None
    configure_logging: bool = False

    def __post_init__(self):
        self.ensure_valid(ValidationLevel.STRICT)
        if self.configure_logging:
            self._setup_logging()

    @property
    def difficulty_settings(self) -> DifficultySettings:
        preset = DIFFICULTY_PRESETS[self.difficulty]
        if not self.difficulty_overrides:
            return preset
        values = preset.to_dict()
        values.update(self.difficulty_overrides)
        return DifficultySettings(**values)

    def _setup_logging(self):
        """Setup logging for the ``vppsim`` logger hierarchy."""
        logger = logging.getLogger("vppsim")
        logger.setLevel(getattr(logging, self.log_level))
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        # Console handler
        if not logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

        # File handler if specified
        if self.log_file:
            file_handler = logging.FileHandler(self.log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    def validate(self) -> ConfigValidationResult:
        """Validate simulation configuration."""
        result = ConfigValidationResult(is_valid=True)

        if self.difficulty not in DIFFICULTY_PRESETS:
            result.add_error(
                f"Unknown difficulty '{self.difficulty}'; expected one of {list(DIFFICULTY_PRESETS)}"
            )
        else:
            known = set(DIFFICULTY_PRESETS[self.difficulty].to_dict())
            for key in self.difficulty_overrides:
                if key not in known:
                    result.add_error(f"Unknown difficulty override: {key}")

        if self.base_step_seconds <= 0:
            result.add_error(f"Base step duration must be > 0, got {self.base_step_seconds}")

        if not MIN_SPEED <= self.speed <= MAX_SPEED:
            result.add_warning(f"Speed {self.speed} is clamped to [{MIN_SPEED}, {MAX_SPEED}]")

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level not in valid_log_levels:
            result.add_error(f"Invalid log level: {self.log_level}")

        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "difficulty": self.difficulty,
            "difficulty_overrides": dict(self.difficulty_overrides),
            "random_seed": self.random_seed,
            "base_step_seconds": self.base_step_seconds,
            "speed": self.speed,
            "log_level": self.log_level,
            "log_file": self.log_file,
            "configure_logging": self.configure_logging,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SimulationConfig':
        """Create from dictionary."""
        return cls(
            difficulty=data.get("difficulty", "medium"),
            difficulty_overrides=data.get("difficulty_overrides", {}),
            random_seed=data.get("random_seed"),
            base_step_seconds=data.get("base_step_seconds", 1.0),
            speed=data.get("speed", 1.0),
            log_level=data.get("log_level", "INFO"),
            log_file=data.get("log_file"),
            configure_logging=data.get("configure_logging", False),
        )


def clamp_speed(speed: float) -> float:
    return max(MIN_SPEED, min(MAX_SPEED, speed))
