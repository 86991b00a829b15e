"""
Quadcopter Mission Package

Mission and command client for a multi-rotor vehicle, with a rotor-level
flight simulator standing in when no vehicle is attached.

Subpackages:
- client: Remote-call client, telemetry ingestion and vehicle state
- dynamics: Quadrotor equations of motion and the flight simulator
- utils: Configuration loading, flight logging and plotting
- controls: Operator flight intents (live or simulated)
- simulate: Command-line simulated mission runner
"""

import importlib.metadata

try:
    # Retrieve the version from installed package metadata
    __version__ = importlib.metadata.version("quadcopter-mission")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0-dev"

from quadcopter_mission.client import DroneClient, LoopbackTransport, VehicleState
from quadcopter_mission.config import ConnectionParams, MissionConfig
from quadcopter_mission.controls import CameraStream, FlightControls
from quadcopter_mission.dynamics import DynamicsConfig, FlightSimulator
from quadcopter_mission.exceptions import (
    DuplicateCallError,
    EmptyMissionError,
    HomeNotSetError,
    NotConnectedError,
    QuadMissionError,
    SimulationError,
    TelemetryError,
)
from quadcopter_mission.geo import GeoParams, GeoTransform, HomeFix
from quadcopter_mission.mission import (
    MissionTask,
    MissionTaskParams,
    MissionWaypoint,
    Waypoint,
    build_mission,
)
from quadcopter_mission.utils import get_default_config, load_config

__all__ = [
    "DroneClient",
    "LoopbackTransport",
    "VehicleState",
    "FlightControls",
    "CameraStream",
    "FlightSimulator",
    "DynamicsConfig",
    "GeoTransform",
    "GeoParams",
    "HomeFix",
    "Waypoint",
    "MissionWaypoint",
    "MissionTask",
    "MissionTaskParams",
    "build_mission",
    "MissionConfig",
    "ConnectionParams",
    "load_config",
    "get_default_config",
    # Errors
    "QuadMissionError",
    "HomeNotSetError",
    "EmptyMissionError",
    "NotConnectedError",
    "DuplicateCallError",
    "TelemetryError",
    "SimulationError",
]
