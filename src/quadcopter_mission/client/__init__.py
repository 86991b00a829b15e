"""
Command/Response Client Package

Talks to one vehicle through an injected transport:
- drone_client: DroneClient, remote calls and intent-level mission commands
- state: VehicleState and the tracked optimistic values
- telemetry: topic-keyed decoders that project telemetry onto VehicleState
- transport: Transport protocol and the in-memory LoopbackTransport
"""

from .drone_client import (
    CameraAction,
    DroneClient,
    DroneTask,
    MissionAction,
    OutstandingCall,
    ServiceResponse,
    make_call_id,
)
from .state import (
    Confirmation,
    ConnectionState,
    FlightStatus,
    GpsFix,
    MissionState,
    Tracked,
    VehicleState,
)
from .telemetry import TOPIC_TYPES, dispatch_telemetry
from .transport import LoopbackTransport, Transport

__all__ = [
    # Client
    "DroneClient",
    "OutstandingCall",
    "ServiceResponse",
    "make_call_id",
    "CameraAction",
    "DroneTask",
    "MissionAction",
    # State
    "VehicleState",
    "FlightStatus",
    "ConnectionState",
    "MissionState",
    "Confirmation",
    "Tracked",
    "GpsFix",
    # Telemetry and transport
    "TOPIC_TYPES",
    "dispatch_telemetry",
    "Transport",
    "LoopbackTransport",
]
