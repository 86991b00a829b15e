#!/usr/bin/env python3
"""
Simulated Mission Runner

Flies a waypoint route through the rotor-level flight simulator:
- Load configuration (defaults, YAML/JSON file, QUADMISSION_* env vars)
- Read the route from a YAML or JSON waypoint file
- Optionally print the vehicle-native mission for a given home fix
- Fly the route, then finish the way the mission's finish action says
- Save the flight log as JSON and optionally plot it

Waypoint file format (YAML or JSON), either a bare list or under "waypoints":
    waypoints:
      - [0, 0, 0]      # takeoff point
      - [5, 0, 3]
      - {x: 5, y: 2, z: 3}

Usage:
    python -m quadcopter_mission.simulate --waypoints route.yaml
    python -m quadcopter_mission.simulate --waypoints route.yaml --home 37.0 -122.0
    python -m quadcopter_mission.simulate --waypoints route.json --plot
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import matplotlib

matplotlib.use("Agg")  # Non-interactive backend for server/headless

import matplotlib.pyplot as plt
import numpy as np
import yaml

from quadcopter_mission.config import MissionConfig
from quadcopter_mission.controls import FlightControls
from quadcopter_mission.dynamics.simulator import FlightPhase, FlightSimulator
from quadcopter_mission.exceptions import QuadMissionError
from quadcopter_mission.geo import GeoTransform
from quadcopter_mission.mission import ActionOnFinish, build_mission
from quadcopter_mission.utils import FlightLogger, Plotter, load_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def load_waypoints(path: str | Path) -> list[np.ndarray]:
    """
    Read a route from a YAML or JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the format is unsupported or a waypoint is malformed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Waypoint file not found: {path}")

    with open(path) as f:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        elif path.suffix == ".json":
            data = json.load(f)
        else:
            raise ValueError(f"Unsupported waypoint format: {path.suffix}")

    if isinstance(data, dict):
        data = data.get("waypoints")
    if not isinstance(data, list):
        raise ValueError(f"No waypoint list found in {path}")

    waypoints = []
    for i, entry in enumerate(data):
        if isinstance(entry, dict):
            try:
                entry = [entry["x"], entry["y"], entry["z"]]
            except KeyError as e:
                raise ValueError(f"Waypoint {i} is missing {e}") from e
        point = np.asarray(entry, dtype=np.float64)
        if point.shape != (3,):
            raise ValueError(f"Waypoint {i} must have 3 coordinates, got {point.shape}")
        waypoints.append(point)
    return waypoints


def fly(simulator: FlightSimulator, flight_logger: FlightLogger, max_steps: int) -> int:
    """Step the simulator until it stops moving, logging every observation."""
    steps = 0
    while simulator.is_moving and steps < max_steps:
        flight_logger.log(simulator.step())
        steps += 1
    if simulator.is_moving:
        logger.warning("Step limit %d reached while %s", max_steps, simulator.phase.value)
    return steps


def run_simulation(
    config: MissionConfig,
    waypoints: list[np.ndarray],
    flight_logger: FlightLogger,
    max_steps: int | None = None,
    finish: bool = True,
) -> FlightSimulator:
    """
    Fly the route and, if requested, the mission's finish action.

    Args:
        config: Mission configuration.
        waypoints: Route including the takeoff point.
        flight_logger: Receives every observation.
        max_steps: Step limit per flight leg (defaults to the configured one).
        finish: Land or return home after the route, per action_on_finish.

    Returns:
        The simulator in its final state.
    """
    limit = config.dynamics.simulation.max_steps if max_steps is None else max_steps

    start = waypoints[0].copy()
    start[1] = config.dynamics.simulation.ground_level
    simulator = FlightSimulator(config.dynamics, home_position=start)
    controls = FlightControls(simulator=simulator, simulate=True)

    controls.start_mission(waypoints)
    steps = fly(simulator, flight_logger, limit)
    logger.info("Route finished after %d steps (t=%.2fs)", steps, simulator.time)

    if finish and simulator.phase == FlightPhase.IDLE:
        action = config.mission.action_on_finish
        if action == ActionOnFinish.AUTO_LANDING and not simulator.on_ground:
            controls.land()
        elif action == ActionOnFinish.RETURN_TO_HOME:
            controls.fly_home()
        if simulator.is_moving:
            steps = fly(simulator, flight_logger, limit)
            logger.info("Finish action %s took %d steps", action.name, steps)

    return simulator


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Fly a waypoint mission in the quadrotor simulator"
    )

    parser.add_argument(
        "--waypoints",
        type=str,
        required=True,
        help="Path to YAML or JSON waypoint file",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML or JSON configuration file",
    )
    parser.add_argument(
        "--home",
        type=float,
        nargs=2,
        metavar=("LAT", "LON"),
        help="Home fix; prints the vehicle-native mission for it",
    )

    # Simulation options
    parser.add_argument(
        "--integrator",
        type=str,
        choices=["euler", "rk4"],
        help="Override the integration method",
    )
    parser.add_argument(
        "--max-steps",
        type=int,
        help="Maximum steps per flight leg",
    )
    parser.add_argument(
        "--no-finish",
        action="store_true",
        help="Hover at the last waypoint instead of running the finish action",
    )

    # Output options
    parser.add_argument(
        "--output-dir",
        type=str,
        help="Output directory for the flight log and plots",
    )
    parser.add_argument(
        "--name",
        type=str,
        help="Flight name used for output files",
    )
    parser.add_argument(
        "--plot",
        action="store_true",
        help="Save route and rotor force plots",
    )

    return parser.parse_args()


def main() -> int:
    """Main entry point."""
    args = parse_args()

    try:
        config_dict = load_config(args.config)
        if args.integrator:
            config_dict["simulation"]["integrator"] = args.integrator
        config = MissionConfig.from_dict(config_dict)
        waypoints = load_waypoints(args.waypoints)
    except (FileNotFoundError, PermissionError, ValueError) as e:
        logger.error("Failed to load inputs: %s", e)
        return 1

    if not waypoints:
        logger.error("Waypoint file %s is empty", args.waypoints)
        return 1

    if args.home:
        transform = GeoTransform(config.geo)
        transform.set_home(*args.home)
        try:
            task = build_mission(waypoints, transform, config.mission)
        except QuadMissionError as e:
            logger.error("Failed to build mission: %s", e)
            return 1
        print(task.to_yaml())

    log_settings = config_dict.get("logging", {})
    flight_logger = FlightLogger(
        output_dir=args.output_dir or log_settings.get("output_dir", "flights"),
        flight_name=args.name,
        log_interval=log_settings.get("log_interval", 1),
    )
    flight_logger.metadata = {
        "config": config.to_dict(),
        "waypoints": [wp.tolist() for wp in waypoints],
    }

    simulator = run_simulation(
        config,
        waypoints,
        flight_logger,
        max_steps=args.max_steps,
        finish=not args.no_finish,
    )
    flight_logger.metadata["final_phase"] = simulator.phase.value
    flight_logger.metadata["final_position"] = simulator.position.tolist()
    flight_logger.metadata["flight_time"] = simulator.time
    log_path = flight_logger.save()

    if args.plot and flight_logger.data:
        plotter = Plotter()
        fig, _ = plotter.plot_route(
            flight_logger.data,
            waypoints,
            save_path=log_path.with_name(f"{log_path.stem}_route.png"),
        )
        plt.close(fig)
        fig, _ = plotter.plot_rotor_forces(
            simulator.get_history(),
            save_path=log_path.with_name(f"{log_path.stem}_rotors.png"),
        )
        plt.close(fig)

    if simulator.is_moving:
        logger.warning("FAILED: flight did not finish (%s)", simulator.phase.value)
        return 1
    logger.info("Flight finished %s at %s", simulator.phase.value, simulator.position.tolist())
    return 0


if __name__ == "__main__":
    sys.exit(main())
