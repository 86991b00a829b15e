"""Tests for the command/response client and telemetry ingestion."""

import logging

import numpy as np
import pytest
import yaml
from scipy.spatial.transform import Rotation

from quadcopter_mission.client import (
    TOPIC_TYPES,
    Confirmation,
    ConnectionState,
    DroneClient,
    DroneTask,
    FlightStatus,
    LoopbackTransport,
    MissionAction,
    MissionState,
    ServiceResponse,
    Transport,
)
from quadcopter_mission.client.telemetry import ATTITUDE_FRAME_OFFSET
from quadcopter_mission.exceptions import (
    DuplicateCallError,
    EmptyMissionError,
    HomeNotSetError,
    NotConnectedError,
)
from quadcopter_mission.mission import MissionTask

ENDPOINT = "ws://localhost:9090"


@pytest.fixture
def transport():
    return LoopbackTransport()


@pytest.fixture
def client(transport):
    drone = DroneClient(transport, client_id="7")
    drone.connect(ENDPOINT)
    return drone


def gps(lat, lon, alt=10.0):
    return {"latitude": lat, "longitude": lon, "altitude": alt}


class TestConnection:
    """Tests for the connection lifecycle."""

    def test_loopback_satisfies_protocol(self, transport):
        """Test that LoopbackTransport implements Transport."""
        assert isinstance(transport, Transport)

    def test_connect_subscribes_all_topics(self, client, transport):
        """Test that every topic is registered with its message type."""
        assert transport.endpoint == ENDPOINT
        assert len(transport.subscriptions) == len(TOPIC_TYPES)
        assert ("/dji_sdk/attitude", "geometry_msgs/QuaternionStamped") in transport.subscriptions
        assert ("/dji_sdk/gps_position", "sensor_msgs/NavSatFix") in transport.subscriptions

    def test_connect_selected_topics(self, transport):
        """Test connecting with a subset of topics."""
        drone = DroneClient(transport)
        drone.connect(ENDPOINT, ["flight_status", "velocity"])
        assert [t for t, _ in transport.subscriptions] == [
            "/dji_sdk/flight_status",
            "/dji_sdk/velocity",
        ]

    def test_connect_rejects_unknown_topic(self, transport):
        """Test that a topic without a message type is rejected before connecting."""
        drone = DroneClient(transport)
        with pytest.raises(ValueError, match="no_such_topic"):
            drone.connect(ENDPOINT, ["no_such_topic"])
        assert not transport.is_connected

    def test_connection_states(self, transport):
        """Test Disconnected -> Connected -> Authorized."""
        drone = DroneClient(transport)
        assert drone.connection_state == ConnectionState.DISCONNECTED
        assert not drone.sdk_ready
        drone.connect(ENDPOINT)
        assert drone.connection_state == ConnectionState.CONNECTED
        assert drone.sdk_ready
        drone.set_authority(True)
        assert drone.connection_state == ConnectionState.AUTHORIZED

    def test_call_before_connect_fails(self, transport):
        """Test that remote calls need an open connection."""
        with pytest.raises(NotConnectedError):
            DroneClient(transport).activate()


class TestIssueCall:
    """Tests for the outstanding call lifecycle."""

    def test_correlation_id(self, client, transport):
        """Test the id format and the namespaced service name."""
        call = client.activate()
        assert call.call_id == "7 /dji_sdk/activation"
        assert transport.last_call()["service"] == "/dji_sdk/activation"

    def test_handler_runs_exactly_once(self, client, transport):
        """Test that one response invokes the handler exactly once."""
        received = []
        call = client.issue_call("activation", on_response=received.append)

        transport.respond(call.call_id, {"result": True, "ack_data": 0})
        transport.respond(call.call_id, {"result": True, "ack_data": 0})

        assert len(received) == 1
        assert received[0] == ServiceResponse(True, 0, {"result": True, "ack_data": 0})
        assert call.call_id not in client.pending_calls

    def test_disconnect_abandons_calls(self, client, transport):
        """Test that no handler fires for a call dropped by disconnect."""
        received = []
        call = client.issue_call("activation", on_response=received.append)

        abandoned = client.disconnect()
        transport.respond(call.call_id, {"result": True})

        assert received == []
        assert abandoned == [call]
        assert call.cancelled
        assert client.pending_calls == {}

    def test_late_response_after_reconnect_is_dropped(self, client, transport, caplog):
        """Test that a response for an abandoned call is ignored after reconnecting."""
        received = []
        call = client.issue_call("activation", on_response=received.append)
        client.disconnect()
        client.connect(ENDPOINT)

        with caplog.at_level(logging.WARNING):
            transport.respond(call.call_id, {"result": True})

        assert received == []
        assert "unknown call" in caplog.text

    def test_out_of_order_responses(self, client, transport):
        """Test that responses are matched by id, not issue order."""
        received = []
        first = client.issue_call("activation", on_response=lambda r: received.append("a"))
        second = client.issue_call("mission_status", on_response=lambda r: received.append("b"))

        transport.respond(second.call_id, {})
        transport.publish("/dji_sdk/flight_status", {"data": 3})
        transport.respond(first.call_id, {})

        assert received == ["b", "a"]

    def test_duplicate_pending_id_rejected(self, client):
        """Test that one id cannot be pending twice."""
        client.fetch_mission_status()
        with pytest.raises(DuplicateCallError):
            client.fetch_mission_status()

    def test_id_reusable_after_response(self, client, transport):
        """Test that an id can be reused once its call has completed."""
        call = client.fetch_mission_status()
        transport.respond(call.call_id, {"waypoint_mission_count": 0})
        client.fetch_mission_status()

    def test_transport_failure_unregisters_call(self, transport):
        """Test that a send failure leaves no pending call behind."""
        drone = DroneClient(transport)
        drone.connect(ENDPOINT)
        transport.disconnect()
        with pytest.raises(ConnectionError):
            drone.activate()
        assert drone.pending_calls == {}

    def test_unsupported_op_is_logged(self, client, caplog):
        """Test that an unknown inbound op is logged, not raised."""
        with caplog.at_level(logging.ERROR):
            client.handle_message({"op": "advertise"})
        assert "advertise" in caplog.text


class TestTelemetry:
    """Tests for inbound telemetry routing."""

    def test_home_latched_by_first_fix(self, client, transport):
        """Test that only the first GPS fix sets the home fix."""
        fixes = [(37.0, -122.0), (37.001, -122.002), (36.5, -121.0), (38.0, -123.0)]
        for lat, lon in fixes:
            transport.publish("/dji_sdk/gps_position", gps(lat, lon))
            assert client.home_latitude == 37.0
            assert client.home_longitude == -122.0

        assert client.state.home_set
        assert client.gps_position == (38.0, -123.0, 10.0)
        assert client.transform.home.latitude == 37.0

    def test_gps_fix_updates_local_position(self, client, transport):
        """Test that each fix is projected into the local frame."""
        transport.publish("/dji_sdk/gps_position", gps(37.0, -122.0, 0.0))
        lat, lon, _ = client.transform.to_geodetic([10.0, 0.0, -4.0])
        transport.publish("/dji_sdk/gps_position", gps(lat, lon, 3.0))
        assert np.allclose(client.state.gps_local_position, [10.0, 4.0, -4.0])

    def test_flight_status(self, client, transport):
        """Test that flight status is cast to the enum."""
        transport.publish("/dji_sdk/flight_status", {"data": 4})
        assert client.flight_status == FlightStatus.LANDING

    def test_scalar_and_vector_topics(self, client, transport):
        """Test the remaining typed topics."""
        transport.publish("/dji_sdk/velocity", {"vector": {"x": 1.0, "y": 2.0, "z": 3.0}})
        transport.publish("/dji_sdk/local_position", {"point": {"x": 4.0, "y": 5.0, "z": 6.0}})
        transport.publish("/dji_sdk/gimbal_angle", {"vector": {"x": 0.0, "y": -30.0, "z": 0.0}})
        transport.publish("/dji_sdk/height_above_takeoff", {"data": 12.5})
        transport.publish("/dji_sdk/gps_health", {"data": 5})

        assert np.allclose(client.velocity, [1.0, 2.0, 3.0])
        assert np.allclose(client.local_position, [4.0, 5.0, 6.0])
        assert np.allclose(client.gimbal_angles, [0.0, -30.0, 0.0])
        assert client.relative_altitude == 12.5
        assert client.gps_health == 5

    def test_structured_topics_stored_verbatim(self, client, transport):
        """Test battery, IMU and RC payloads are stored as received."""
        rc = {"axes": [0.0, 0.1, 0.2, 0.3, 0.4, 0.5], "buttons": []}
        transport.publish("/dji_sdk/rc", rc)
        transport.publish("/dji_sdk/battery_state", {"percentage": 87.0})
        assert client.state.rc == rc
        assert client.state.battery_state == {"percentage": 87.0}

    def test_attitude_applies_frame_offset(self, client, transport):
        """Test attitude = offset * quaternion."""
        raw = Rotation.from_euler("x", 30.0, degrees=True)
        x, y, z, w = raw.as_quat()
        transport.publish(
            "/dji_sdk/attitude", {"quaternion": {"x": x, "y": y, "z": z, "w": w}}
        )
        expected = (ATTITUDE_FRAME_OFFSET * raw).as_matrix()
        assert np.allclose(Rotation.from_quat(client.attitude).as_matrix(), expected)

    def test_topic_without_namespace(self, client):
        """Test that bare topic names are routed too."""
        assert client.dispatch_inbound("flight_status", {"data": 1})
        assert client.flight_status == FlightStatus.ON_GROUND_STANDBY

    def test_unknown_topic_dropped(self, client, caplog):
        """Test that unknown topics are logged and do not change state."""
        with caplog.at_level(logging.ERROR):
            assert not client.dispatch_inbound("/dji_sdk/wind", {"data": 1})
        assert "wind" in caplog.text

    @pytest.mark.parametrize(
        "topic,payload",
        [
            ("flight_status", {"data": 42}),
            ("flight_status", {}),
            ("velocity", {"vector": {"x": 1.0}}),
            ("gps_position", {"latitude": "north"}),
            ("gps_position", gps(float("nan"), -122.0)),
            ("gps_position", gps(37.0, -122.0, float("inf"))),
            ("gps_position", gps("nan", "nan")),
            ("gps_position", gps(91.0, -122.0)),
            ("gps_position", gps(37.0, -180.5)),
            ("attitude", {"quaternion": {"x": 0.0, "y": 0.0, "z": 0.0, "w": 0.0}}),
            ("rc", [1, 2, 3]),
        ],
    )
    def test_malformed_payload_dropped(self, client, topic, payload):
        """Test that malformed payloads leave the state untouched."""
        before = client.state.flight_status, client.velocity.copy(), client.state.home_fix
        assert not client.dispatch_inbound(topic, payload)
        assert client.state.flight_status == before[0]
        assert np.allclose(client.velocity, before[1])
        assert client.state.home_fix == before[2]
        assert client.state.rc is None
        assert client.state.gps_fix.latitude is None

    def test_invalid_fix_does_not_latch_home(self, client, transport):
        """Test that the first valid fix after a non-finite one sets home."""
        transport.publish("/dji_sdk/gps_position", gps(float("nan"), 0.0))
        assert not client.state.home_set

        transport.publish("/dji_sdk/gps_position", gps(37.0, -122.0))
        assert client.home_latitude == 37.0
        assert client.home_longitude == -122.0
        assert client.gps_position == (37.0, -122.0, 10.0)


class TestAuthority:
    """Tests for optimistic control authority."""

    def test_set_optimistically(self, client, transport):
        """Test that authority is set before the response arrives."""
        call = client.set_authority(True)
        assert client.has_authority
        assert client.state.authority.status == Confirmation.REQUESTED
        assert transport.last_call()["args"] == [1]

        transport.respond(call.call_id, {"result": True, "ack_data": 0})
        assert client.state.authority.status == Confirmation.CONFIRMED

    def test_rejection_is_not_rolled_back(self, client, transport, caplog):
        """Test that a rejected request keeps the requested value."""
        call = client.set_authority(True)
        with caplog.at_level(logging.WARNING):
            transport.respond(call.call_id, {"result": False, "ack_data": 3})

        assert client.has_authority
        assert client.state.authority.status == Confirmation.REJECTED
        assert "failed" in caplog.text

    def test_stale_response_does_not_confirm_newer_request(self, client, transport):
        """Test that a grant response cannot confirm a later release."""
        grant = client.set_authority(True)
        client.set_authority(False)

        transport.respond(grant.call_id, {"result": True})

        assert not client.has_authority
        assert client.state.authority.status == Confirmation.REQUESTED


class TestMissionCommands:
    """Tests for mission upload and actions."""

    WAYPOINTS = [(0.0, 0.0, 0.0), (5.0, 0.0, 3.0), (5.0, 2.0, 3.0)]

    def test_start_mission_requires_home(self, client):
        """Test that a mission cannot be built before the first GPS fix."""
        with pytest.raises(HomeNotSetError):
            client.start_mission(self.WAYPOINTS)
        assert client.pending_calls == {}

    def test_start_mission_rejects_empty(self, client, transport):
        """Test that an empty route is rejected."""
        transport.publish("/dji_sdk/gps_position", gps(37.0, -122.0))
        with pytest.raises(EmptyMissionError):
            client.start_mission([])

    def test_start_mission_uploads(self, client, transport):
        """Test the upload carries the YAML mission and enters UPLOADING."""
        transport.publish("/dji_sdk/gps_position", gps(37.0, -122.0))

        task = client.start_mission(self.WAYPOINTS)

        upload = transport.last_call("/dji_sdk/mission_waypoint_upload")
        assert len(upload["args"]) == 1
        assert MissionTask.from_dict(yaml.safe_load(upload["args"][0])) == task
        assert len(task) == 2
        assert client.mission_state == MissionState.UPLOADING
        assert client.state.mission.status == Confirmation.REQUESTED

        transport.respond(upload["id"], {"result": True, "ack_data": 0})
        assert client.mission_state == MissionState.UPLOADING
        assert client.state.mission.status == Confirmation.CONFIRMED

    def test_upload_does_not_start(self, client, transport):
        """Test that upload and start are separate calls."""
        transport.publish("/dji_sdk/gps_position", gps(37.0, -122.0))
        client.start_mission(self.WAYPOINTS)
        services = [call["service"] for call in transport.calls]
        assert "/dji_sdk/mission_waypoint_action" not in services

        client.start_uploaded_mission()
        assert transport.last_call()["args"] == [int(MissionAction.START)]
        assert client.mission_state == MissionState.FLYING

    def test_no_local_authority_gate(self, client, transport, caplog):
        """Test that the upload is issued even without authority."""
        transport.publish("/dji_sdk/gps_position", gps(37.0, -122.0))
        with caplog.at_level(logging.WARNING):
            client.start_mission(self.WAYPOINTS)
        assert transport.last_call()["service"] == "/dji_sdk/mission_waypoint_upload"
        assert "without control authority" in caplog.text

    def test_pause_and_resume_pending_together(self, client, transport):
        """Test that pause and resume have distinct correlation ids."""
        pause = client.pause_mission()
        assert client.mission_state == MissionState.PAUSED
        resume = client.resume_mission()
        assert client.mission_state == MissionState.FLYING
        assert pause.call_id == "7 /dji_sdk/mission_waypoint_action pause"
        assert resume.call_id == "7 /dji_sdk/mission_waypoint_action resume"

        transport.respond(pause.call_id, {"result": True})
        assert client.state.mission.status == Confirmation.REQUESTED
        transport.respond(resume.call_id, {"result": False})
        assert client.mission_state == MissionState.FLYING
        assert client.state.mission.status == Confirmation.REJECTED

    def test_stop_returns_to_idle(self, client):
        """Test that stop moves the mission to IDLE optimistically."""
        client.stop_mission()
        assert client.mission_state == MissionState.IDLE

    def test_update_mission_stops_then_uploads(self, client, transport):
        """Test that update sends STOP and a new upload."""
        transport.publish("/dji_sdk/gps_position", gps(37.0, -122.0))
        client.update_mission(self.WAYPOINTS)
        assert [call["service"] for call in transport.calls] == [
            "/dji_sdk/mission_waypoint_action",
            "/dji_sdk/mission_waypoint_upload",
        ]
        assert transport.calls[0]["args"] == [int(MissionAction.STOP)]

    def test_update_mission_with_stop_pending(self, client, transport):
        """Test that update still uploads while an earlier STOP is unanswered."""
        transport.publish("/dji_sdk/gps_position", gps(37.0, -122.0))
        client.stop_mission()

        task = client.update_mission(self.WAYPOINTS)

        assert [call["service"] for call in transport.calls] == [
            "/dji_sdk/mission_waypoint_action",
            "/dji_sdk/mission_waypoint_upload",
        ]
        assert transport.last_call()["args"] == [task.to_yaml()]
        assert client.mission_state == MissionState.UPLOADING

    def test_mission_info_parsed(self, client, transport):
        """Test that the info query response is parsed into a MissionTask."""
        transport.publish("/dji_sdk/gps_position", gps(37.0, -122.0))
        task = client.start_mission(self.WAYPOINTS)

        call = client.fetch_mission_info()
        transport.respond(call.call_id, task.to_dict())
        assert client.last_mission_info == task

    def test_mission_speed(self, client, transport):
        """Test the speed query and update calls."""
        call = client.fetch_mission_speed()
        transport.respond(call.call_id, {"speed": 4.5})
        assert client.last_mission_speed == 4.5

        client.set_mission_speed(3)
        assert transport.last_call()["args"] == [3.0]


class TestTasks:
    """Tests for task and camera calls."""

    def test_land_and_fly_home(self, client, transport):
        """Test the task codes and that flight status is not changed locally."""
        client.land()
        assert transport.last_call()["args"] == [DroneTask.LAND.value]
        client.fly_home()
        assert transport.last_call()["args"] == [DroneTask.GO_HOME.value]
        assert client.flight_status is None

    def test_flight_status_follows_telemetry(self, client, transport):
        """Test the landing sequence comes from telemetry only."""
        client.land()
        for status in (4, 5, 1):
            transport.publish("/dji_sdk/flight_status", {"data": status})
        assert client.flight_status == FlightStatus.ON_GROUND_STANDBY

    def test_arm_flag(self, client, transport):
        """Test arm and disarm arguments."""
        client.set_arm(True)
        assert transport.last_call()["args"] == [1]
        client.set_arm(False)
        assert transport.last_call()["args"] == [0]

    @pytest.mark.parametrize(
        "method,service,args,tag",
        [
            ("subscribe_240p", "stereo_240p_subscription", [1, 1, 1, 1, 0], "subscribe"),
            ("unsubscribe_240p", "stereo_240p_subscription", [0, 0, 0, 0, 1], "unsubscribe"),
            ("subscribe_depth_front", "stereo_depth_subscription", [1, 0], "subscribe"),
            ("unsubscribe_depth_front", "stereo_depth_subscription", [0, 1], "unsubscribe"),
            ("subscribe_vga_front", "stereo_vga_subscription", [0, 1, 0], "subscribe"),
            ("unsubscribe_vga_front", "stereo_vga_subscription", [0, 0, 1], "unsubscribe"),
            ("subscribe_fpv", "setup_camera_stream", [0, 1], "subscribe FPV"),
            ("unsubscribe_fpv", "setup_camera_stream", [0, 0], "unsubscribe FPV"),
            ("subscribe_main_camera", "setup_camera_stream", [1, 1], "subscribe MainCamera"),
            ("unsubscribe_main_camera", "setup_camera_stream", [1, 0], "unsubscribe MainCamera"),
        ],
    )
    def test_stream_bit_patterns(self, client, transport, method, service, args, tag):
        """Test each feed toggle's service, argument pattern and id tag."""
        call = getattr(client, method)()
        sent = transport.last_call()
        assert sent["service"] == f"/dji_sdk/{service}"
        assert sent["args"] == args
        assert call.call_id == f"7 /dji_sdk/{service} {tag}"

    def test_subscribe_and_unsubscribe_pending_together(self, client):
        """Test that the direction tags keep both ids distinct."""
        client.subscribe_fpv()
        client.unsubscribe_fpv()
        assert len(client.pending_calls) == 2
