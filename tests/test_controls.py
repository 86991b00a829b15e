"""Tests for the flight-intent controls."""

import logging

import numpy as np
import pytest

from quadcopter_mission.client import DroneClient, LoopbackTransport, MissionAction
from quadcopter_mission.config import MissionConfig
from quadcopter_mission.controls import CameraStream, FlightControls
from quadcopter_mission.dynamics import FlightPhase, FlightSimulator
from quadcopter_mission.exceptions import EmptyMissionError

WAYPOINTS = [(0.0, 2.0, 0.0), (4.0, 2.0, 0.0)]


@pytest.fixture
def transport():
    return LoopbackTransport()


@pytest.fixture
def live(transport):
    client = DroneClient(transport)
    client.connect("ws://localhost:9090")
    transport.publish("/dji_sdk/gps_position", {"latitude": 37.0, "longitude": -122.0, "altitude": 0.0})
    return FlightControls(client=client)


@pytest.fixture
def simulated():
    return FlightControls(
        simulator=FlightSimulator(home_position=(0.0, 2.0, 0.0)), simulate=True
    )


class TestFlightControlsLive:
    """Tests for controls routed to a live vehicle."""

    def test_requires_client(self):
        """Test that live mode needs a client."""
        with pytest.raises(ValueError, match="DroneClient"):
            FlightControls()

    def test_start_mission_uploads(self, live, transport):
        """Test start_mission builds and uploads the route."""
        task = live.start_mission(WAYPOINTS)
        assert len(task) == 1
        assert transport.last_call()["service"] == "/dji_sdk/mission_waypoint_upload"
        assert len(live.waypoints) == 2

    def test_pause_resume(self, live, transport):
        """Test pause and resume map to mission actions."""
        live.pause_mission()
        assert transport.last_call()["args"] == [int(MissionAction.PAUSE)]
        live.resume_mission()
        assert transport.last_call()["args"] == [int(MissionAction.RESUME)]

    def test_update_resends_current_route(self, live, transport):
        """Test update_mission without arguments reuses the last route."""
        live.start_mission(WAYPOINTS)
        transport.respond(transport.last_call()["id"], {"result": True})

        live.update_mission()
        services = [call["service"] for call in transport.calls[-2:]]
        assert services == ["/dji_sdk/mission_waypoint_action", "/dji_sdk/mission_waypoint_upload"]

    def test_update_without_route_fails(self, live):
        """Test that there is nothing to update before a mission was started."""
        with pytest.raises(EmptyMissionError):
            live.update_mission()

    def test_land_and_fly_home(self, live, transport):
        """Test task intents."""
        live.land()
        assert transport.last_call()["service"] == "/dji_sdk/drone_task_control"
        live.fly_home()
        assert transport.last_call()["args"] == [1]

    @pytest.mark.parametrize(
        "stream,enabled,args",
        [
            (CameraStream.STEREO_240P, True, [1, 1, 1, 1, 0]),
            (CameraStream.DEPTH_FRONT, False, [0, 1]),
            (CameraStream.VGA_FRONT, True, [0, 1, 0]),
            (CameraStream.FPV, True, [0, 1]),
            (CameraStream.MAIN_CAMERA, False, [1, 0]),
        ],
    )
    def test_camera_streams(self, live, transport, stream, enabled, args):
        """Test each stream toggle sends its bit pattern."""
        live.set_camera_stream(stream, enabled)
        assert transport.last_call()["args"] == args

    def test_camera_stream_by_value(self, live, transport):
        """Test streams can be named by their string value."""
        live.set_camera_stream("fpv", False)
        assert transport.last_call()["args"] == [0, 0]


class TestFlightControlsSimulated:
    """Tests for controls routed to the simulator."""

    def test_default_simulator(self):
        """Test simulate=True creates a simulator when none is given."""
        controls = FlightControls(simulate=True)
        assert isinstance(controls.simulator, FlightSimulator)
        assert controls.client is None

    def test_start_mission_flies_all_points(self, simulated):
        """Test the simulated route includes the takeoff point."""
        assert simulated.start_mission(WAYPOINTS) is None
        simulated.simulator.run_until_idle()
        assert np.linalg.norm(simulated.simulator.position - WAYPOINTS[-1]) <= 0.1

    def test_empty_route_rejected(self, simulated):
        """Test that an empty route is rejected before reaching the simulator."""
        with pytest.raises(EmptyMissionError):
            simulated.start_mission([])

    def test_pause_resume(self, simulated):
        """Test pause and resume reach the simulator."""
        simulated.start_mission(WAYPOINTS)
        simulated.simulator.step()
        simulated.pause_mission()
        assert simulated.simulator.phase == FlightPhase.PAUSED
        simulated.resume_mission()
        assert simulated.simulator.phase == FlightPhase.FLYING

    def test_land(self, simulated):
        """Test land descends in simulation."""
        simulated.land()
        simulated.simulator.run_until_idle()
        assert simulated.simulator.phase == FlightPhase.LANDED

    def test_fly_home(self, simulated):
        """Test fly_home returns and lands in simulation."""
        simulated.fly_home()
        simulated.simulator.run_until_idle()
        assert simulated.simulator.phase == FlightPhase.LANDED

    def test_update_mission(self, simulated):
        """Test update_mission replaces the simulated route."""
        simulated.start_mission(WAYPOINTS)
        new_route = [(0.0, 2.0, 0.0), (0.0, 4.0, 0.0)]
        simulated.update_mission(new_route)
        simulated.simulator.run_until_idle()
        assert np.linalg.norm(simulated.simulator.position - new_route[-1]) <= 0.1

    def test_camera_unavailable(self, simulated, caplog):
        """Test camera toggles are logged and ignored in simulation."""
        with caplog.at_level(logging.WARNING):
            simulated.set_camera_stream(CameraStream.FPV, True)
        assert "not available in simulation" in caplog.text


class TestFromConfig:
    """Tests for FlightControls.from_config."""

    def test_simulated(self):
        """Test simulate=True builds a simulator with the dynamics config."""
        config = MissionConfig.from_dict(
            {"connection": {"simulate": True}, "simulation": {"dt": 0.01}}
        )
        controls = FlightControls.from_config(config)
        assert controls.simulate
        assert controls.simulator.config.simulation.dt == 0.01

    def test_live(self, transport):
        """Test the live client is wired from the connection section."""
        config = MissionConfig.from_dict(
            {"connection": {"client_id": "3"}, "geo": {"alt_scale": 2.0}}
        )
        controls = FlightControls.from_config(config, transport)
        assert controls.client.transport is transport
        assert controls.client.client_id == "3"
        assert controls.client.transform.params.alt_scale == 2.0
        assert not controls.client.is_connected
