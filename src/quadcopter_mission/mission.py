"""
Waypoint Mission Builder

Turns an ordered list of operator-frame waypoints into the vehicle-native
mission descriptor uploaded to the flight controller.

The first waypoint of every submitted list is the automatic-takeoff point
and is dropped; the remaining waypoints keep their relative order, which
is the order the vehicle flies them.

Every MissionWaypoint carries fixed-length (16) action-slot arrays. Unused
slots are zero.
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum

import numpy as np
import yaml

from .exceptions import EmptyMissionError
from .geo import GeoTransform

logger = logging.getLogger(__name__)

ACTION_SLOTS = 16


class TurnMode(IntEnum):
    CLOCKWISE = 0
    COUNTER_CLOCKWISE = 1


class ActionOnFinish(IntEnum):
    NO_ACTION = 0
    RETURN_TO_HOME = 1
    AUTO_LANDING = 2
    RETURN_TO_POINT = 3
    INFINITE_MODE = 4


class YawMode(IntEnum):
    AUTO = 0
    LOCK = 1
    RC = 2
    WAYPOINT = 3


class TraceMode(IntEnum):
    POINT = 0
    COORDINATED = 1


class ActionOnRCLost(IntEnum):
    FREE = 0
    AUTO = 1


class GimbalPitchMode(IntEnum):
    FREE = 0
    AUTO = 1


@dataclass(frozen=True)
class Waypoint:
    """Operator-frame waypoint produced by the planning side."""

    local_position: tuple[float, float, float]


@dataclass(frozen=True)
class MissionWaypointAction:
    """Per-waypoint action slots (always ACTION_SLOTS long)."""

    action_repeat: int = 0
    command_list: tuple[int, ...] = (0,) * ACTION_SLOTS
    command_parameter: tuple[int, ...] = (0,) * ACTION_SLOTS

    def __post_init__(self):
        if len(self.command_list) != ACTION_SLOTS:
            raise ValueError(
                f"command_list must have {ACTION_SLOTS} slots, got {len(self.command_list)}"
            )
        if len(self.command_parameter) != ACTION_SLOTS:
            raise ValueError(
                f"command_parameter must have {ACTION_SLOTS} slots, "
                f"got {len(self.command_parameter)}"
            )

    def to_dict(self) -> dict:
        return {
            "action_repeat": self.action_repeat,
            "command_list": list(self.command_list),
            "command_parameter": list(self.command_parameter),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MissionWaypointAction":
        return cls(
            action_repeat=int(data.get("action_repeat", 0)),
            command_list=tuple(int(v) for v in data.get("command_list", (0,) * ACTION_SLOTS)),
            command_parameter=tuple(
                int(v) for v in data.get("command_parameter", (0,) * ACTION_SLOTS)
            ),
        )


@dataclass(frozen=True)
class MissionWaypoint:
    """Vehicle-native waypoint."""

    latitude: float
    longitude: float
    altitude: float  # relative to takeoff
    damping_distance: float = 3.0
    target_yaw: int = 0
    target_gimbal_pitch: int = 0
    turn_mode: TurnMode = TurnMode.CLOCKWISE
    has_action: int = 0
    action_time_limit: int = 30
    waypoint_action: MissionWaypointAction = field(default_factory=MissionWaypointAction)

    def to_dict(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "altitude": self.altitude,
            "damping_distance": self.damping_distance,
            "target_yaw": self.target_yaw,
            "target_gimbal_pitch": self.target_gimbal_pitch,
            "turn_mode": int(self.turn_mode),
            "has_action": self.has_action,
            "action_time_limit": self.action_time_limit,
            "waypoint_action": self.waypoint_action.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MissionWaypoint":
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            altitude=float(data["altitude"]),
            damping_distance=float(data.get("damping_distance", 3.0)),
            target_yaw=int(data.get("target_yaw", 0)),
            target_gimbal_pitch=int(data.get("target_gimbal_pitch", 0)),
            turn_mode=TurnMode(int(data.get("turn_mode", 0))),
            has_action=int(data.get("has_action", 0)),
            action_time_limit=int(data.get("action_time_limit", 30)),
            waypoint_action=MissionWaypointAction.from_dict(data.get("waypoint_action", {})),
        )


@dataclass(frozen=True)
class MissionTask:
    """
    Complete waypoint mission. Immutable; a new mission replaces an old one.

    Attributes:
        velocity_range: Maximum speed the remote controller can command (m/s).
        idle_velocity: Cruise speed between waypoints (m/s).
        action_on_finish: What the vehicle does after the last waypoint.
        mission_exec_times: How many times the route is flown.
        yaw_mode: Heading policy along the route.
        trace_mode: Whether the vehicle stops at each point or curves through.
        action_on_rc_lost: Behavior when the remote controller signal is lost.
        gimbal_pitch_mode: Gimbal pitch policy.
        mission_waypoint: Ordered waypoints.
    """

    velocity_range: float
    idle_velocity: float
    action_on_finish: ActionOnFinish
    mission_exec_times: int
    yaw_mode: YawMode
    trace_mode: TraceMode
    action_on_rc_lost: ActionOnRCLost
    gimbal_pitch_mode: GimbalPitchMode
    mission_waypoint: tuple[MissionWaypoint, ...] = ()

    def __len__(self) -> int:
        return len(self.mission_waypoint)

    def to_dict(self) -> dict:
        return {
            "velocity_range": self.velocity_range,
            "idle_velocity": self.idle_velocity,
            "action_on_finish": int(self.action_on_finish),
            "mission_exec_times": self.mission_exec_times,
            "yaw_mode": int(self.yaw_mode),
            "trace_mode": int(self.trace_mode),
            "action_on_rc_lost": int(self.action_on_rc_lost),
            "gimbal_pitch_mode": int(self.gimbal_pitch_mode),
            "mission_waypoint": [wp.to_dict() for wp in self.mission_waypoint],
        }

    def to_yaml(self) -> str:
        """Serialize the mission in flow style, the form the upload call carries."""
        return yaml.safe_dump(self.to_dict(), default_flow_style=True, sort_keys=False).strip()

    @classmethod
    def from_dict(cls, data: dict) -> "MissionTask":
        """
        Parse a mission descriptor (e.g. a mission-info query response).

        Raises:
            ValueError: If a required field is missing or an enum value is unknown.
        """
        try:
            return cls(
                velocity_range=float(data["velocity_range"]),
                idle_velocity=float(data["idle_velocity"]),
                action_on_finish=ActionOnFinish(int(data["action_on_finish"])),
                mission_exec_times=int(data["mission_exec_times"]),
                yaw_mode=YawMode(int(data["yaw_mode"])),
                trace_mode=TraceMode(int(data["trace_mode"])),
                action_on_rc_lost=ActionOnRCLost(int(data["action_on_rc_lost"])),
                gimbal_pitch_mode=GimbalPitchMode(int(data["gimbal_pitch_mode"])),
                mission_waypoint=tuple(
                    MissionWaypoint.from_dict(wp) for wp in data.get("mission_waypoint", [])
                ),
            )
        except KeyError as e:
            raise ValueError(f"Mission descriptor missing field: {e}") from e


@dataclass
class MissionTaskParams:
    """Mission envelope policy shared by every uploaded mission."""

    velocity_range: float = 15.0
    idle_velocity: float = 15.0
    action_on_finish: ActionOnFinish = ActionOnFinish.AUTO_LANDING
    mission_exec_times: int = 1
    yaw_mode: YawMode = YawMode.AUTO
    trace_mode: TraceMode = TraceMode.POINT
    action_on_rc_lost: ActionOnRCLost = ActionOnRCLost.FREE
    gimbal_pitch_mode: GimbalPitchMode = GimbalPitchMode.FREE
    damping_distance: float = 3.0
    turn_mode: TurnMode = TurnMode.CLOCKWISE
    action_time_limit: int = 30

    @classmethod
    def from_dict(cls, params: dict) -> "MissionTaskParams":
        """Build from a config section, accepting enum names or values."""
        defaults = cls()
        return cls(
            velocity_range=float(params.get("velocity_range", defaults.velocity_range)),
            idle_velocity=float(params.get("idle_velocity", defaults.idle_velocity)),
            action_on_finish=_enum_value(
                ActionOnFinish, params.get("action_on_finish", defaults.action_on_finish)
            ),
            mission_exec_times=int(
                params.get("mission_exec_times", defaults.mission_exec_times)
            ),
            yaw_mode=_enum_value(YawMode, params.get("yaw_mode", defaults.yaw_mode)),
            trace_mode=_enum_value(TraceMode, params.get("trace_mode", defaults.trace_mode)),
            action_on_rc_lost=_enum_value(
                ActionOnRCLost, params.get("action_on_rc_lost", defaults.action_on_rc_lost)
            ),
            gimbal_pitch_mode=_enum_value(
                GimbalPitchMode, params.get("gimbal_pitch_mode", defaults.gimbal_pitch_mode)
            ),
            damping_distance=float(params.get("damping_distance", defaults.damping_distance)),
            turn_mode=_enum_value(TurnMode, params.get("turn_mode", defaults.turn_mode)),
            action_time_limit=int(params.get("action_time_limit", defaults.action_time_limit)),
        )

    def to_dict(self) -> dict:
        return {
            "velocity_range": self.velocity_range,
            "idle_velocity": self.idle_velocity,
            "action_on_finish": self.action_on_finish.name,
            "mission_exec_times": self.mission_exec_times,
            "yaw_mode": self.yaw_mode.name,
            "trace_mode": self.trace_mode.name,
            "action_on_rc_lost": self.action_on_rc_lost.name,
            "gimbal_pitch_mode": self.gimbal_pitch_mode.name,
            "damping_distance": self.damping_distance,
            "turn_mode": self.turn_mode.name,
            "action_time_limit": self.action_time_limit,
        }


def _enum_value(enum_cls, value):
    """Resolve an enum member from a member, its name, or its integer value."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls[value.upper()]
        except KeyError:
            raise ValueError(f"Unknown {enum_cls.__name__}: {value}") from None
    return enum_cls(int(value))


def waypoint_position(waypoint) -> np.ndarray:
    """Local [x, y, z] of a Waypoint or a plain 3-sequence."""
    raw = waypoint.local_position if isinstance(waypoint, Waypoint) else waypoint
    position = np.asarray(raw, dtype=np.float64)
    if position.shape != (3,):
        raise ValueError(f"Waypoint position must have shape (3,), got {position.shape}")
    return position


def build_mission(
    waypoints,
    transform: GeoTransform,
    params: MissionTaskParams | None = None,
) -> MissionTask:
    """
    Build a vehicle-native mission from operator-frame waypoints.

    Args:
        waypoints: Ordered Waypoint objects or [x, y, z] sequences. The first
            entry is the automatic-takeoff point and is dropped.
        transform: Local/geodetic transform anchored at the home fix.
        params: Mission envelope policy (defaults to MissionTaskParams()).

    Returns:
        MissionTask with len(waypoints) - 1 waypoints in input order.

    Raises:
        EmptyMissionError: If waypoints is empty.
        HomeNotSetError: If the transform has no home fix yet.
    """
    waypoints = list(waypoints)
    if not waypoints:
        raise EmptyMissionError("Cannot build a mission from an empty waypoint list")

    transform.require_home()
    params = params or MissionTaskParams()

    # The first waypoint sits above the vehicle; takeoff is automatic.
    legs = waypoints[1:]

    mission_waypoints = []
    for waypoint in legs:
        latitude, longitude, altitude = transform.to_geodetic(waypoint_position(waypoint))
        mission_waypoint = MissionWaypoint(
            latitude=latitude,
            longitude=longitude,
            altitude=altitude,
            damping_distance=params.damping_distance,
            turn_mode=params.turn_mode,
            action_time_limit=params.action_time_limit,
        )
        logger.debug("Adding waypoint at: %s", mission_waypoint)
        mission_waypoints.append(mission_waypoint)

    task = MissionTask(
        velocity_range=params.velocity_range,
        idle_velocity=params.idle_velocity,
        action_on_finish=params.action_on_finish,
        mission_exec_times=params.mission_exec_times,
        yaw_mode=params.yaw_mode,
        trace_mode=params.trace_mode,
        action_on_rc_lost=params.action_on_rc_lost,
        gimbal_pitch_mode=params.gimbal_pitch_mode,
        mission_waypoint=tuple(mission_waypoints),
    )
    logger.info("Built mission with %d waypoints", len(task))
    return task
