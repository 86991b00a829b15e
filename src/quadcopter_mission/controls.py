"""
Flight-Intent Controls

The small set of operator actions (start, pause, resume and update a
mission, land, fly home, camera and stream toggles), routed either to a
live vehicle through DroneClient or to the FlightSimulator.

The controls keep the last submitted waypoint list. In live mode it is
turned into a vehicle-native mission (first waypoint dropped); in simulation
the whole list is flown, the first point standing in for the takeoff leg.
"""

import logging
from enum import Enum

import numpy as np

from .client import DroneClient, LoopbackTransport, Transport
from .config import MissionConfig
from .dynamics.simulator import FlightSimulator
from .exceptions import EmptyMissionError
from .geo import GeoTransform
from .mission import waypoint_position

logger = logging.getLogger(__name__)


class CameraStream(Enum):
    """Camera and stereo feeds that can be toggled from the console."""

    STEREO_240P = "stereo_240p"
    DEPTH_FRONT = "depth_front"
    VGA_FRONT = "vga_front"
    FPV = "fpv"
    MAIN_CAMERA = "main_camera"


class FlightControls:
    """
    Operator-facing flight intents.

    Attributes:
        client: Live vehicle client (None in simulation).
        simulator: Simulated vehicle (None when flying a live vehicle).
        waypoints: Last submitted route as [x, y, z] arrays.
    """

    def __init__(
        self,
        client: DroneClient | None = None,
        simulator: FlightSimulator | None = None,
        simulate: bool = False,
    ):
        if simulate and simulator is None:
            simulator = FlightSimulator()
        if not simulate and client is None:
            raise ValueError("A DroneClient is required unless simulate=True")

        self.client = client
        self.simulator = simulator
        self.simulate = simulate
        self.waypoints: list[np.ndarray] = []

    @classmethod
    def from_config(
        cls,
        config: MissionConfig,
        transport: Transport | None = None,
    ) -> "FlightControls":
        """
        Build controls from a MissionConfig.

        In simulation mode no client is created. Otherwise a DroneClient is
        created over the given transport (an in-memory LoopbackTransport
        if none is given) but not connected.
        """
        if config.connection.simulate:
            return cls(simulator=FlightSimulator(config.dynamics), simulate=True)

        client = DroneClient(
            transport if transport is not None else LoopbackTransport(),
            client_id=config.connection.client_id,
            topic_prefix=config.connection.topic_prefix,
            transform=GeoTransform(config.geo),
            mission_params=config.mission,
        )
        return cls(client=client, simulate=False)

    # ------------------------------------------------------------------
    # Missions
    # ------------------------------------------------------------------

    def start_mission(self, waypoints):
        """
        Fly a new route.

        Returns:
            The uploaded MissionTask in live mode, None in simulation.

        Raises:
            EmptyMissionError: If waypoints is empty.
        """
        self.waypoints = self._parse_waypoints(waypoints)
        if self.simulate:
            self.simulator.start_route(self.waypoints)
            return None
        return self.client.start_mission(self.waypoints)

    def start_uploaded_mission(self) -> None:
        """Start the mission uploaded by start_mission() (live mode only)."""
        if self.simulate:
            logger.info("Simulated routes start on start_mission()")
            return
        self.client.start_uploaded_mission()

    def pause_mission(self) -> None:
        if self.simulate:
            self.simulator.pause()
        else:
            self.client.pause_mission()

    def resume_mission(self) -> None:
        if self.simulate:
            self.simulator.resume()
        else:
            self.client.resume_mission()

    def update_mission(self, waypoints=None):
        """
        Replace the route in flight.

        Args:
            waypoints: New route, or None to resend the current one.
        """
        if waypoints is not None:
            self.waypoints = self._parse_waypoints(waypoints)
        elif not self.waypoints:
            raise EmptyMissionError("No mission to update")

        if self.simulate:
            self.simulator.update_route(self.waypoints)
            return None
        return self.client.update_mission(self.waypoints)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def land(self) -> None:
        if self.simulate:
            self.simulator.land()
        else:
            self.client.land()

    def fly_home(self) -> None:
        if self.simulate:
            self.simulator.fly_home()
        else:
            self.client.fly_home()

    # ------------------------------------------------------------------
    # Camera and stereo feeds
    # ------------------------------------------------------------------

    def set_camera_stream(self, stream: CameraStream, enabled: bool) -> None:
        """Subscribe to or unsubscribe from a camera feed on the live vehicle."""
        stream = CameraStream(stream)
        if self.simulate:
            logger.warning("Camera stream %s is not available in simulation", stream.value)
            return

        client = self.client
        toggles = {
            CameraStream.STEREO_240P: (client.subscribe_240p, client.unsubscribe_240p),
            CameraStream.DEPTH_FRONT: (
                client.subscribe_depth_front,
                client.unsubscribe_depth_front,
            ),
            CameraStream.VGA_FRONT: (client.subscribe_vga_front, client.unsubscribe_vga_front),
            CameraStream.FPV: (client.subscribe_fpv, client.unsubscribe_fpv),
            CameraStream.MAIN_CAMERA: (
                client.subscribe_main_camera,
                client.unsubscribe_main_camera,
            ),
        }
        subscribe, unsubscribe = toggles[stream]
        if enabled:
            subscribe()
        else:
            unsubscribe()

    @staticmethod
    def _parse_waypoints(waypoints) -> list[np.ndarray]:
        parsed = [waypoint_position(wp) for wp in waypoints]
        if not parsed:
            raise EmptyMissionError("Cannot fly an empty waypoint list")
        return parsed
