"""
Telemetry Ingestion

Dispatch table from telemetry topic to a decoder that projects the payload
onto VehicleState. Payloads are rosbridge message dicts:

    attitude              {"quaternion": {"x", "y", "z", "w"}}
    battery_state         sensor_msgs/BatteryState (stored verbatim)
    flight_status         {"data": uint8}
    gimbal_angle          {"vector": {"x", "y", "z"}}
    gps_health            {"data": uint8}
    gps_position          {"latitude", "longitude", "altitude"}
    imu                   sensor_msgs/Imu (stored verbatim)
    rc                    sensor_msgs/Joy (stored verbatim)
    velocity              {"vector": {"x", "y", "z"}}
    height_above_takeoff  {"data": float32}
    local_position        {"point": {"x", "y", "z"}}

Decoders raise TelemetryError for malformed payloads; dispatch_telemetry
logs and drops them so a bad message never changes state.
"""

import logging
import math
from collections.abc import Callable

import numpy as np
from scipy.spatial.transform import Rotation

from ..exceptions import TelemetryError
from ..geo import GeoTransform
from .state import FlightStatus, VehicleState

logger = logging.getLogger(__name__)

# Topic name (without namespace) -> rosbridge message type
TOPIC_TYPES = {
    "attitude": "geometry_msgs/QuaternionStamped",
    "battery_state": "sensor_msgs/BatteryState",
    "flight_status": "std_msgs/UInt8",
    "gimbal_angle": "geometry_msgs/Vector3Stamped",
    "gps_health": "std_msgs/UInt8",
    "gps_position": "sensor_msgs/NavSatFix",
    "imu": "sensor_msgs/Imu",
    "rc": "sensor_msgs/Joy",
    "velocity": "geometry_msgs/Vector3Stamped",
    "height_above_takeoff": "std_msgs/Float32",
    "local_position": "geometry_msgs/PointStamped",
}

# Aligns the flight controller's body frame with the y-up working frame
ATTITUDE_FRAME_OFFSET = Rotation.from_euler("zxy", [0.0, 90.0, 180.0], degrees=True)


def _xyz(payload: dict, key: str) -> np.ndarray:
    try:
        vector = payload[key]
        return np.array([float(vector["x"]), float(vector["y"]), float(vector["z"])])
    except (KeyError, TypeError, ValueError) as e:
        raise TelemetryError(f"Expected a 3-vector under '{key}': {e}") from e


def _scalar(payload: dict, cast=float):
    try:
        return cast(payload["data"])
    except (KeyError, TypeError, ValueError) as e:
        raise TelemetryError(f"Expected a scalar under 'data': {e}") from e


def _structured(payload) -> dict:
    if not isinstance(payload, dict):
        raise TelemetryError(f"Expected a structured message, got {type(payload).__name__}")
    return dict(payload)


def _apply_attitude(state: VehicleState, payload: dict, transform: GeoTransform) -> None:
    try:
        q = payload["quaternion"]
        quat = [float(q["x"]), float(q["y"]), float(q["z"]), float(q["w"])]
        attitude = ATTITUDE_FRAME_OFFSET * Rotation.from_quat(quat)
    except (KeyError, TypeError, ValueError) as e:
        raise TelemetryError(f"Invalid attitude quaternion: {e}") from e
    state.attitude = attitude.as_quat()


def _apply_battery_state(state: VehicleState, payload, transform: GeoTransform) -> None:
    state.battery_state = _structured(payload)


def _apply_flight_status(state: VehicleState, payload: dict, transform: GeoTransform) -> None:
    value = _scalar(payload, int)
    try:
        state.flight_status = FlightStatus(value)
    except ValueError as e:
        raise TelemetryError(f"Unknown flight status: {value}") from e


def _apply_gimbal_angle(state: VehicleState, payload: dict, transform: GeoTransform) -> None:
    state.gimbal_angles = _xyz(payload, "vector")


def _apply_gps_health(state: VehicleState, payload: dict, transform: GeoTransform) -> None:
    state.gps_fix.health = _scalar(payload, int)


def _apply_gps_position(state: VehicleState, payload: dict, transform: GeoTransform) -> None:
    try:
        latitude = float(payload["latitude"])
        longitude = float(payload["longitude"])
        altitude = float(payload["altitude"])
    except (KeyError, TypeError, ValueError) as e:
        raise TelemetryError(f"Invalid GPS fix: {e}") from e

    if not all(math.isfinite(v) for v in (latitude, longitude, altitude)):
        raise TelemetryError(f"Non-finite GPS fix: ({latitude}, {longitude}, {altitude})")
    if abs(latitude) > 90.0 or abs(longitude) > 180.0:
        raise TelemetryError(f"GPS fix out of range: ({latitude}, {longitude})")

    state.gps_fix.latitude = latitude
    state.gps_fix.longitude = longitude
    state.gps_fix.altitude = altitude

    if state.home_fix is None:
        state.home_fix = transform.set_home(latitude, longitude)
        logger.info("Home fix set to (%.7f, %.7f)", latitude, longitude)

    state.gps_local_position = transform.from_geodetic(latitude, longitude, altitude)


def _apply_imu(state: VehicleState, payload, transform: GeoTransform) -> None:
    state.imu = _structured(payload)


def _apply_rc(state: VehicleState, payload, transform: GeoTransform) -> None:
    state.rc = _structured(payload)


def _apply_velocity(state: VehicleState, payload: dict, transform: GeoTransform) -> None:
    state.velocity = _xyz(payload, "vector")


def _apply_height_above_takeoff(state: VehicleState, payload: dict, transform: GeoTransform) -> None:
    state.relative_altitude = _scalar(payload, float)


def _apply_local_position(state: VehicleState, payload: dict, transform: GeoTransform) -> None:
    state.local_position = _xyz(payload, "point")


TELEMETRY_HANDLERS: dict[str, Callable[[VehicleState, dict, GeoTransform], None]] = {
    "attitude": _apply_attitude,
    "battery_state": _apply_battery_state,
    "flight_status": _apply_flight_status,
    "gimbal_angle": _apply_gimbal_angle,
    "gps_health": _apply_gps_health,
    "gps_position": _apply_gps_position,
    "imu": _apply_imu,
    "rc": _apply_rc,
    "velocity": _apply_velocity,
    "height_above_takeoff": _apply_height_above_takeoff,
    "local_position": _apply_local_position,
}


def dispatch_telemetry(
    state: VehicleState, transform: GeoTransform, topic: str, payload
) -> bool:
    """
    Apply one telemetry message to the vehicle state.

    Args:
        state: State to update.
        transform: Transform anchored (or to be anchored) at the home fix.
        topic: Topic name without the SDK namespace.
        payload: Decoded message body.

    Returns:
        True if the message was applied, False if it was dropped.
    """
    handler = TELEMETRY_HANDLERS.get(topic)
    if handler is None:
        logger.error("Topic %s not implemented", topic)
        return False
    try:
        handler(state, payload, transform)
    except TelemetryError as e:
        logger.error("Dropping malformed %s message: %s", topic, e)
        return False
    return True
