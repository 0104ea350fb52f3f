"""Custom exceptions for the VPP dispatch simulator."""

class VPPSimError(Exception):
    """Base exception for simulator errors."""
    pass

class ConfigurationError(VPPSimError):
    """Exception raised for configuration errors."""
    pass

class InvalidConfigurationError(ConfigurationError):
    """Exception raised when a strategy or simulation configuration is rejected."""
    pass

class ValidationError(VPPSimError):
    """Base exception for validation errors."""
    pass

class ValidationTypeError(ValidationError):
    """Exception raised for type validation errors."""
    pass

class ValidationRangeError(ValidationError):
    """Exception raised for range validation errors."""
    pass

class AssetError(VPPSimError):
    """Exception raised when a single asset cannot be advanced."""

    def __init__(self, asset_id: str, message: str):
        super().__init__(f"Asset {asset_id}: {message}")
        self.asset_id = asset_id

class SimulationError(VPPSimError):
    """Exception raised for tick-level simulation failures."""
    pass
