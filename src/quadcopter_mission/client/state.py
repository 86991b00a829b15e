"""
Vehicle State

Authoritative picture of the vehicle as seen through telemetry. A single
DroneClient owns one VehicleState and is its only writer.

Values that are changed optimistically by a command (control authority and
the mission sub-state) are stored as Tracked values, so the window between
"requested" and "confirmed/rejected" stays observable.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

import numpy as np

from ..geo import HomeFix


class FlightStatus(IntEnum):
    """Flight status reported by the flight controller."""

    ON_GROUND_STANDBY = 1
    TAKEOFF = 2
    IN_AIR_STANDBY = 3
    LANDING = 4
    FINISHING_LANDING = 5


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHORIZED = "authorized"


class MissionState(Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    FLYING = "flying"
    PAUSED = "paused"


class Confirmation(Enum):
    """Whether an optimistic value has been acknowledged by the vehicle."""

    REQUESTED = "requested"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Tracked:
    """
    A value set optimistically by a command.

    Attributes:
        value: The requested value. It is kept even if the vehicle rejects
            the request; no rollback is performed.
        status: Acknowledgment state of the request.
        call_id: Correlation id of the call that requested the value, used
            so a stale response cannot confirm a newer request.
    """

    value: Any
    status: Confirmation = Confirmation.CONFIRMED
    call_id: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == Confirmation.REQUESTED

    def resolve(self, call_id: str, accepted: bool) -> "Tracked":
        """Return the value confirmed or rejected if call_id made the request."""
        if call_id != self.call_id:
            return self
        status = Confirmation.CONFIRMED if accepted else Confirmation.REJECTED
        return Tracked(self.value, status, self.call_id)


@dataclass
class GpsFix:
    """Raw geodetic telemetry."""

    latitude: float | None = None
    longitude: float | None = None
    altitude: float | None = None
    health: int = 0


@dataclass
class VehicleState:
    """Telemetry-derived state of one vehicle."""

    flight_status: FlightStatus | None = None
    authority: Tracked = field(default_factory=lambda: Tracked(False))
    mission: Tracked = field(default_factory=lambda: Tracked(MissionState.IDLE))

    # Quaternion [x, y, z, w], body to local frame, frame offset applied
    attitude: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0]))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    local_position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    relative_altitude: float = 0.0  # only valid after arming
    gps_fix: GpsFix = field(default_factory=GpsFix)
    home_fix: HomeFix | None = None
    gimbal_angles: np.ndarray | None = None

    # Local-frame position recomputed from each GPS fix
    gps_local_position: np.ndarray | None = None

    # Stored verbatim
    battery_state: dict | None = None
    imu: dict | None = None
    rc: dict | None = None

    @property
    def home_set(self) -> bool:
        return self.home_fix is not None

    @property
    def has_authority(self) -> bool:
        """Requested authority (optimistic, see authority.status)."""
        return bool(self.authority.value)
