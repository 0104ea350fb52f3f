"""Event definitions for the VPP dispatch simulator."""

from enum import Enum
from typing import Dict, Any, Optional
from dataclasses import dataclass
from datetime import datetime

class EventType(str, Enum):
    """Types of simulator events."""
    # Asset events
    ASSET_DROPPED = "asset_dropped"
    ASSET_ERROR = "asset_error"
    COMMAND_REJECTED = "command_rejected"
    UNKNOWN_ASSET = "unknown_asset"

    # Tick events
    TICK_APPLIED = "tick_applied"
    TICK_FAILED = "tick_failed"

    # Run lifecycle
    SIMULATION_COMPLETE = "simulation_complete"

@dataclass(frozen=True)
class Event:
    """Base event class."""
    type: EventType
    tick: int
    timestamp: datetime
    details: Optional[Dict[str, Any]] = None
    asset_id: Optional[str] = None
