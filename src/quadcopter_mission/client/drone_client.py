"""
Command/Response Client

Owns the connection to one vehicle: control authority, the mission
sub-state, outstanding remote calls and the telemetry-derived VehicleState.

Processing model:
    Single-threaded and event-driven. The transport delivers inbound
    messages one at a time to handle_message(); no two handlers run
    concurrently, so VehicleState and the pending-call map need no lock.
    A host that drives the client from several threads must serialize
    every call into it.

Remote calls:
    Each call is keyed by a correlation id "<client_id> <service>[ <tag>]".
    At most one call per id is pending. Responses are matched by id, never
    by issue order, and each response handler runs at most once. Calls are
    never retried; disconnect() abandons the pending ones without invoking
    their handlers.

Optimistic state:
    set_authority() and the mission actions update local state before the
    vehicle answers. The response marks the value CONFIRMED or REJECTED but
    never rolls it back.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

import numpy as np

from ..exceptions import DuplicateCallError, NotConnectedError
from ..geo import GeoTransform
from ..mission import MissionTask, MissionTaskParams, build_mission
from .state import (
    Confirmation,
    ConnectionState,
    FlightStatus,
    MissionState,
    Tracked,
    VehicleState,
)
from .telemetry import TOPIC_TYPES, dispatch_telemetry
from .transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_TOPIC_PREFIX = "/dji_sdk/"

# Service names (without namespace)
QUERY_VERSION = "query_drone_version"
ACTIVATION = "activation"
SDK_CONTROL_AUTHORITY = "sdk_control_authority"
ARM_CONTROL = "drone_arm_control"
TASK_CONTROL = "drone_task_control"
SET_LOCAL_POS_REF = "set_local_pos_ref"
CAMERA_ACTION = "camera_action"
MISSION_STATUS = "mission_status"
MISSION_UPLOAD = "mission_waypoint_upload"
MISSION_ACTION = "mission_waypoint_action"
MISSION_GET_INFO = "mission_waypoint_getInfo"
MISSION_GET_SPEED = "mission_waypoint_getSpeed"
MISSION_SET_SPEED = "mission_waypoint_setSpeed"
STEREO_240P = "stereo_240p_subscription"
STEREO_DEPTH = "stereo_depth_subscription"
STEREO_VGA = "stereo_vga_subscription"
CAMERA_STREAM = "setup_camera_stream"


class DroneTask(IntEnum):
    GO_HOME = 1
    TAKEOFF = 4
    LAND = 6


class CameraAction(IntEnum):
    SHOOT_PHOTO = 0
    START_VIDEO = 1
    STOP_VIDEO = 2


class MissionAction(IntEnum):
    START = 0
    STOP = 1
    PAUSE = 2
    RESUME = 3


# Local sub-state each mission action moves to optimistically
MISSION_ACTION_STATES = {
    MissionAction.START: MissionState.FLYING,
    MissionAction.STOP: MissionState.IDLE,
    MissionAction.PAUSE: MissionState.PAUSED,
    MissionAction.RESUME: MissionState.FLYING,
}


@dataclass(frozen=True)
class ServiceResponse:
    """Normalized service response."""

    result: bool
    ack_code: int
    values: dict

    @classmethod
    def from_message(cls, message: dict) -> "ServiceResponse":
        values = message.get("values") or {}
        result = values.get("result", message.get("result", True))
        return cls(
            result=bool(result),
            ack_code=int(values.get("ack_data", 0)),
            values=values,
        )


@dataclass
class OutstandingCall:
    """A remote call waiting for its response."""

    call_id: str
    service: str
    args: list | None
    on_response: Callable[[ServiceResponse], Any] | None = None
    cancelled: bool = False


def make_call_id(client_id: str, service: str, tag: str | None = None) -> str:
    call_id = f"{client_id} {service}"
    if tag:
        call_id = f"{call_id} {tag}"
    return call_id


class DroneClient:
    """
    Remote-call client for one vehicle.

    Attributes:
        transport: Injected message channel.
        client_id: Identifier prefixed to every correlation id.
        topic_prefix: SDK namespace prepended to topic and service names.
        transform: Local/geodetic transform, anchored by the first GPS fix.
        mission_params: Envelope policy for missions built by start_mission().
        state: Telemetry-derived vehicle state.
    """

    def __init__(
        self,
        transport: Transport,
        client_id: str = "0",
        topic_prefix: str = DEFAULT_TOPIC_PREFIX,
        transform: GeoTransform | None = None,
        mission_params: MissionTaskParams | None = None,
    ):
        self.transport = transport
        self.client_id = str(client_id)
        self.topic_prefix = topic_prefix
        self.transform = transform or GeoTransform()
        self.mission_params = mission_params or MissionTaskParams()
        self.state = VehicleState()

        self._connected = False
        self._pending: dict[str, OutstandingCall] = {}

        self.last_mission_info: MissionTask | None = None
        self.last_mission_speed: float | None = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self, endpoint: str, topics=None) -> None:
        """
        Open the transport and subscribe to telemetry topics.

        Args:
            endpoint: Transport endpoint, e.g. "ws://localhost:9090".
            topics: Topic names without namespace (defaults to every known topic).

        Raises:
            ValueError: If a topic has no known message type.
        """
        topics = list(TOPIC_TYPES) if topics is None else list(topics)
        unknown = [topic for topic in topics if topic not in TOPIC_TYPES]
        if unknown:
            raise ValueError(f"No message type registered for topics: {unknown}")

        self.transport.connect(endpoint, self.handle_message)
        for topic in topics:
            self.transport.subscribe(self.topic_prefix + topic, TOPIC_TYPES[topic])
        self._connected = True
        logger.info("Connected to %s with %d topics", endpoint, len(topics))

    def disconnect(self) -> list[OutstandingCall]:
        """
        Close the transport and abandon every pending call.

        Returns:
            The abandoned calls, marked cancelled. Their handlers never run.
        """
        abandoned = list(self._pending.values())
        self._pending.clear()
        for call in abandoned:
            call.cancelled = True
            logger.warning("Abandoning call %s on disconnect", call.call_id)

        self._connected = False
        self.transport.disconnect()
        logger.info("Disconnected (%d calls abandoned)", len(abandoned))
        return abandoned

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def sdk_ready(self) -> bool:
        """True when the transport is present and connected."""
        return self._connected and self.transport is not None and self.transport.is_connected

    @property
    def connection_state(self) -> ConnectionState:
        if not self._connected:
            return ConnectionState.DISCONNECTED
        if self.state.has_authority:
            return ConnectionState.AUTHORIZED
        return ConnectionState.CONNECTED

    @property
    def pending_calls(self) -> dict[str, OutstandingCall]:
        return dict(self._pending)

    # ------------------------------------------------------------------
    # Remote calls
    # ------------------------------------------------------------------

    def issue_call(
        self,
        service: str,
        args: list | None = None,
        on_response: Callable[[ServiceResponse], Any] | None = None,
        tag: str | None = None,
    ) -> OutstandingCall:
        """
        Register and send a remote call.

        Args:
            service: Service name without namespace.
            args: Argument list, passed to the transport unchanged.
            on_response: Invoked once with the ServiceResponse.
            tag: Optional direction tag appended to the correlation id.

        Returns:
            The registered OutstandingCall.

        Raises:
            NotConnectedError: If the client is not connected.
            DuplicateCallError: If a call with the same id is still pending.
        """
        if not self._connected:
            raise NotConnectedError(f"Cannot call {service}: not connected")

        full_service = self.topic_prefix + service
        call_id = make_call_id(self.client_id, full_service, tag)
        if call_id in self._pending:
            raise DuplicateCallError(f"Call {call_id} is already pending")

        call = OutstandingCall(call_id, full_service, args, on_response)
        self._pending[call_id] = call
        try:
            self.transport.call_service(full_service, call_id, args)
        except Exception:
            del self._pending[call_id]
            raise
        logger.info("RPC call: %s %s args=%s", call_id, full_service, args)
        return call

    def _call_id(self, service: str, tag: str | None = None) -> str:
        return make_call_id(self.client_id, self.topic_prefix + service, tag)

    def handle_message(self, message: dict) -> None:
        """Entry point for every inbound transport message."""
        op = message.get("op")
        if op == "publish":
            self.dispatch_inbound(message.get("topic", ""), message.get("msg"))
        elif op == "service_response":
            self._complete_call(message)
        else:
            logger.error("Unsupported inbound op: %s", op)

    def _complete_call(self, message: dict) -> None:
        call_id = message.get("id")
        call = self._pending.pop(call_id, None)
        if call is None:
            logger.warning("Dropping response for unknown call %s", call_id)
            return

        response = ServiceResponse.from_message(message)
        if call.on_response is not None:
            call.on_response(response)

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def dispatch_inbound(self, topic: str, payload) -> bool:
        """
        Route one telemetry message to the vehicle state.

        Args:
            topic: Topic name, with or without the SDK namespace.
            payload: Message body.

        Returns:
            True if applied, False if the topic is unknown or the payload
            malformed (both are logged, never raised).
        """
        if topic.startswith(self.topic_prefix):
            topic = topic[len(self.topic_prefix):]
        return dispatch_telemetry(self.state, self.transform, topic, payload)

    # ------------------------------------------------------------------
    # Vehicle services
    # ------------------------------------------------------------------

    def fetch_drone_version(self) -> OutstandingCall:
        return self.issue_call(QUERY_VERSION, on_response=self._on_drone_version)

    def activate(self) -> OutstandingCall:
        return self.issue_call(
            ACTIVATION, on_response=lambda r: self._log_ack("Activation", r)
        )

    def set_authority(self, control: bool) -> OutstandingCall:
        """
        Request (or release) SDK control authority.

        Authority is set to the requested value immediately; the response
        only confirms or rejects it.
        """
        tag = "grant" if control else "release"
        call_id = self._call_id(SDK_CONTROL_AUTHORITY, tag)
        call = self.issue_call(
            SDK_CONTROL_AUTHORITY,
            [1 if control else 0],
            on_response=lambda r: self._on_authority(call_id, r),
            tag=tag,
        )
        self.state.authority = Tracked(bool(control), Confirmation.REQUESTED, call.call_id)
        return call

    def set_arm(self, armed: bool) -> OutstandingCall:
        return self.issue_call(
            ARM_CONTROL,
            [1 if armed else 0],
            on_response=lambda r: self._log_ack("Arm/Disarm request", r),
            tag="arm" if armed else "disarm",
        )

    def execute_task(self, task: DroneTask) -> OutstandingCall:
        """Run a task on the vehicle. Flight status follows from telemetry only."""
        task = DroneTask(task)
        return self.issue_call(
            TASK_CONTROL,
            [int(task)],
            on_response=lambda r: self._log_ack(f"Task {task.name}", r),
            tag=task.name.lower(),
        )

    def set_local_position_origin(self) -> OutstandingCall:
        return self.issue_call(
            SET_LOCAL_POS_REF,
            on_response=lambda r: self._log_ack("Local position origin set", r),
        )

    def execute_camera_action(self, action: CameraAction) -> OutstandingCall:
        action = CameraAction(action)
        return self.issue_call(
            CAMERA_ACTION,
            [int(action)],
            on_response=lambda r: self._log_ack(f"Camera action {action.name}", r),
            tag=action.name.lower(),
        )

    # ------------------------------------------------------------------
    # Waypoint missions
    # ------------------------------------------------------------------

    def fetch_mission_status(self) -> OutstandingCall:
        return self.issue_call(MISSION_STATUS, on_response=self._on_mission_status)

    def upload_mission(self, task: MissionTask) -> OutstandingCall:
        """Upload a mission. The mission enters UPLOADING until acknowledged."""
        call_id = self._call_id(MISSION_UPLOAD)
        call = self.issue_call(
            MISSION_UPLOAD,
            [task.to_yaml()],
            on_response=lambda r: self._on_mission_upload(call_id, r),
        )
        self.state.mission = Tracked(MissionState.UPLOADING, Confirmation.REQUESTED, call.call_id)
        return call

    def send_mission_action(self, action: MissionAction) -> OutstandingCall:
        """Send a mission action and move the mission sub-state optimistically."""
        action = MissionAction(action)
        tag = action.name.lower()
        call_id = self._call_id(MISSION_ACTION, tag)
        call = self.issue_call(
            MISSION_ACTION,
            [int(action)],
            on_response=lambda r: self._on_mission_action(call_id, action, r),
            tag=tag,
        )
        self.state.mission = Tracked(
            MISSION_ACTION_STATES[action], Confirmation.REQUESTED, call.call_id
        )
        return call

    def fetch_mission_info(self) -> OutstandingCall:
        return self.issue_call(MISSION_GET_INFO, on_response=self._on_mission_info)

    def fetch_mission_speed(self) -> OutstandingCall:
        return self.issue_call(MISSION_GET_SPEED, on_response=self._on_mission_speed)

    def set_mission_speed(self, speed: float) -> OutstandingCall:
        return self.issue_call(
            MISSION_SET_SPEED,
            [float(speed)],
            on_response=lambda r: self._log_ack("Set waypoint speed", r),
        )

    def start_mission(self, waypoints) -> MissionTask:
        """
        Build a mission from local-frame waypoints and upload it.

        The mission is not started; call start_uploaded_mission() once the
        upload is confirmed. No local authority check is made.

        Raises:
            EmptyMissionError: If waypoints is empty.
            HomeNotSetError: If no GPS fix has been received.
        """
        task = build_mission(waypoints, self.transform, self.mission_params)
        if not self.state.has_authority:
            logger.warning("Uploading mission without control authority")
        self.upload_mission(task)
        return task

    def start_uploaded_mission(self) -> OutstandingCall:
        return self.send_mission_action(MissionAction.START)

    def pause_mission(self) -> OutstandingCall:
        return self.send_mission_action(MissionAction.PAUSE)

    def resume_mission(self) -> OutstandingCall:
        return self.send_mission_action(MissionAction.RESUME)

    def stop_mission(self) -> OutstandingCall:
        return self.send_mission_action(MissionAction.STOP)

    def update_mission(self, waypoints) -> MissionTask:
        """
        Stop the current mission, then build and upload a replacement.

        A STOP that is still awaiting its response is not sent again.
        """
        if self._call_id(MISSION_ACTION, "stop") in self._pending:
            logger.info("Mission stop already pending, uploading replacement")
        else:
            self.stop_mission()
        return self.start_mission(waypoints)

    def land(self) -> OutstandingCall:
        return self.execute_task(DroneTask.LAND)

    def fly_home(self) -> OutstandingCall:
        return self.execute_task(DroneTask.GO_HOME)

    # ------------------------------------------------------------------
    # Camera and stereo feeds
    # ------------------------------------------------------------------

    def subscribe_240p(
        self,
        front_right: bool = True,
        front_left: bool = True,
        down_front: bool = True,
        down_back: bool = True,
    ) -> OutstandingCall:
        args = [int(front_right), int(front_left), int(down_front), int(down_back), 0]
        return self._stream_call(STEREO_240P, args, "subscribe", "Subscribe to 240p feeds")

    def unsubscribe_240p(self) -> OutstandingCall:
        return self._stream_call(
            STEREO_240P, [0, 0, 0, 0, 1], "unsubscribe", "Unsubscribe to 240p feeds"
        )

    def subscribe_depth_front(self) -> OutstandingCall:
        return self._stream_call(STEREO_DEPTH, [1, 0], "subscribe", "Subscribe front depth feed")

    def unsubscribe_depth_front(self) -> OutstandingCall:
        return self._stream_call(
            STEREO_DEPTH, [0, 1], "unsubscribe", "Unsubscribe front depth feed"
        )

    def subscribe_vga_front(self, use_20hz: bool = True) -> OutstandingCall:
        # Frequency flag: 0 = 20 Hz, 1 = 10 Hz
        args = [0 if use_20hz else 1, 1, 0]
        return self._stream_call(STEREO_VGA, args, "subscribe", "Subscribe VGA front feed")

    def unsubscribe_vga_front(self) -> OutstandingCall:
        return self._stream_call(
            STEREO_VGA, [0, 0, 1], "unsubscribe", "Unsubscribe VGA front feed"
        )

    def subscribe_fpv(self) -> OutstandingCall:
        return self._stream_call(CAMERA_STREAM, [0, 1], "subscribe FPV", "Subscribe FPV feed")

    def unsubscribe_fpv(self) -> OutstandingCall:
        return self._stream_call(
            CAMERA_STREAM, [0, 0], "unsubscribe FPV", "Unsubscribe FPV feed"
        )

    def subscribe_main_camera(self) -> OutstandingCall:
        return self._stream_call(
            CAMERA_STREAM, [1, 1], "subscribe MainCamera", "Subscribe MainCamera feed"
        )

    def unsubscribe_main_camera(self) -> OutstandingCall:
        return self._stream_call(
            CAMERA_STREAM, [1, 0], "unsubscribe MainCamera", "Unsubscribe MainCamera feed"
        )

    def _stream_call(self, service: str, args: list, tag: str, label: str) -> OutstandingCall:
        return self.issue_call(
            service, args, on_response=lambda r: self._log_result(label, r), tag=tag
        )

    # ------------------------------------------------------------------
    # Response handlers
    # ------------------------------------------------------------------

    def _log_ack(self, label: str, response: ServiceResponse) -> None:
        outcome = "succeeded" if response.result else "failed"
        if response.result:
            logger.info("%s %s (ACK: %d)", label, outcome, response.ack_code)
        else:
            logger.warning("%s %s (ACK: %d)", label, outcome, response.ack_code)

    def _log_result(self, label: str, response: ServiceResponse) -> None:
        if response.result:
            logger.info("%s succeeded", label)
        else:
            logger.warning("%s failed", label)

    def _on_drone_version(self, response: ServiceResponse) -> None:
        logger.info(
            "Drone: %s (Version %s)",
            response.values.get("hardware"),
            response.values.get("version"),
        )

    def _on_authority(self, call_id: str, response: ServiceResponse) -> None:
        self._log_ack("Control request", response)
        self.state.authority = self.state.authority.resolve(call_id, response.result)

    def _on_mission_status(self, response: ServiceResponse) -> None:
        logger.info(
            "Waypoint count: %s, hotpoint count: %s",
            response.values.get("waypoint_mission_count"),
            response.values.get("hotpoint_mission_count"),
        )

    def _on_mission_upload(self, call_id: str, response: ServiceResponse) -> None:
        self._log_ack("Waypoint task upload", response)
        self.state.mission = self.state.mission.resolve(call_id, response.result)

    def _on_mission_action(
        self, call_id: str, action: MissionAction, response: ServiceResponse
    ) -> None:
        self._log_ack(f"Waypoint action {action.name}", response)
        self.state.mission = self.state.mission.resolve(call_id, response.result)

    def _on_mission_info(self, response: ServiceResponse) -> None:
        try:
            task = MissionTask.from_dict(response.values)
        except ValueError as e:
            logger.error("Could not parse mission info: %s", e)
            return
        self.last_mission_info = task
        logger.info("Current mission:\n%s", task.to_yaml())

    def _on_mission_speed(self, response: ServiceResponse) -> None:
        speed = response.values.get("speed")
        self.last_mission_speed = None if speed is None else float(speed)
        logger.info("Current waypoint speed: %s", speed)

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def has_authority(self) -> bool:
        return self.state.has_authority

    @property
    def flight_status(self) -> FlightStatus | None:
        return self.state.flight_status

    @property
    def mission_state(self) -> MissionState:
        return self.state.mission.value

    @property
    def attitude(self) -> np.ndarray:
        return self.state.attitude.copy()

    @property
    def velocity(self) -> np.ndarray:
        return self.state.velocity.copy()

    @property
    def local_position(self) -> np.ndarray:
        return self.state.local_position.copy()

    @property
    def relative_altitude(self) -> float:
        return self.state.relative_altitude

    @property
    def gps_position(self) -> tuple[float | None, float | None, float | None]:
        fix = self.state.gps_fix
        return fix.latitude, fix.longitude, fix.altitude

    @property
    def gps_health(self) -> int:
        return self.state.gps_fix.health

    @property
    def gimbal_angles(self) -> np.ndarray | None:
        return self.state.gimbal_angles

    @property
    def home_latitude(self) -> float | None:
        return self.state.home_fix.latitude if self.state.home_fix else None

    @property
    def home_longitude(self) -> float | None:
        return self.state.home_fix.longitude if self.state.home_fix else None
