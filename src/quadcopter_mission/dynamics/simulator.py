"""
Simulated Quadrotor Flight

Stands in for a live vehicle when no flight controller is attached. The
simulator flies an ordered route of local-frame points using the rotor-level
equations in ``equations``:

    target_rotor_mix -> rotor_mix_forward -> linear/angular acceleration
    -> Euler or RK4 integration

Rotor forces are held constant over a step (zero-order hold) and recorded
unclamped, so negative forces requested by the mixer are visible in the
history.

State Vector Layout (y-up working frame):
    Position:         [x, y, z]        - meters
    Velocity:         [vx, vy, vz]     - m/s
    Angular position: [ux, uy, uz]     - radians
    Angular velocity: [dux, duy, duz]  - rad/s
"""

import logging
import math
from enum import Enum

import numpy as np

from ..exceptions import SimulationError
from . import equations
from .config import DynamicsConfig

logger = logging.getLogger(__name__)


class FlightPhase(Enum):
    """What the simulated vehicle is currently doing."""

    IDLE = "idle"
    FLYING = "flying"
    PAUSED = "paused"
    LANDING = "landing"
    LANDED = "landed"


class FlightSimulator:
    """
    Rotor-level flight simulation over a waypoint route.

    Attributes:
        config: Dynamics configuration.
        home: Position the vehicle returns to on fly_home().
        phase: Current flight phase.
    """

    # State vector indices
    POS_X, POS_Y, POS_Z = 0, 1, 2
    VEL_X, VEL_Y, VEL_Z = 3, 4, 5
    ANG_X, ANG_Y, ANG_Z = 6, 7, 8
    RATE_X, RATE_Y, RATE_Z = 9, 10, 11

    STATE_DIM = 12

    def __init__(
        self,
        config: dict | DynamicsConfig | None = None,
        home_position=(0.0, 0.0, 0.0),
    ):
        """
        Initialize the simulator with the vehicle resting at home.

        Args:
            config: Configuration dictionary or DynamicsConfig instance.
                   If dict, will be converted via DynamicsConfig.from_dict().
                   If None, default configuration is used.
            home_position: Starting (and return) position [x, y, z].
        """
        if config is None:
            self.config = DynamicsConfig()
        elif isinstance(config, dict):
            self.config = DynamicsConfig.from_dict(config)
        else:
            self.config = config

        self.home = np.asarray(home_position, dtype=np.float64).copy()
        if self.home.shape != (3,):
            raise ValueError(f"home_position must have shape (3,), got {self.home.shape}")

        self._state_vector = np.zeros(self.STATE_DIM)
        self._state_vector[self.POS_X:self.POS_Z + 1] = self.home
        self._time = 0.0
        self._step_count = 0

        self._route: list[np.ndarray] = []
        self._route_index = 0
        self._land_on_arrival = False
        self._touchdown: np.ndarray | None = None
        self.phase = FlightPhase.IDLE
        self._resume_phase: FlightPhase | None = None

        self._last_rotor_forces = np.zeros(4)
        self._history: list[dict] = []

    # ------------------------------------------------------------------
    # Operator intents
    # ------------------------------------------------------------------

    def start_route(self, waypoints) -> None:
        """
        Fly an ordered route from its first point.

        The first point is flown to like any other, which models the
        automatic takeoff leg.

        Args:
            waypoints: Sequence of [x, y, z] local-frame points.
        """
        route = self._parse_route(waypoints)
        if not route:
            raise SimulationError("Cannot start an empty route")

        self._route = route
        self._route_index = 0
        self._land_on_arrival = False
        self._resume_phase = None
        self.phase = FlightPhase.FLYING
        logger.info("Simulated route started with %d waypoints", len(route))

    def update_route(self, waypoints) -> None:
        """
        Replace the route while keeping progress along it.

        The vehicle continues toward the point at the current index of the
        new route (or the last point if the new route is shorter).
        """
        route = self._parse_route(waypoints)
        if not route:
            raise SimulationError("Cannot update to an empty route")

        self._route = route
        self._route_index = min(self._route_index, len(route) - 1)
        self._land_on_arrival = False
        if self.phase == FlightPhase.PAUSED:
            self._resume_phase = FlightPhase.FLYING
        else:
            self.phase = FlightPhase.FLYING
        logger.info(
            "Simulated route updated: %d waypoints, continuing at index %d",
            len(route),
            self._route_index,
        )

    def pause(self) -> None:
        """Hold position until resume() is called."""
        if self.phase not in (FlightPhase.FLYING, FlightPhase.LANDING):
            raise SimulationError(f"Cannot pause while {self.phase.value}")
        self._resume_phase = self.phase
        self.phase = FlightPhase.PAUSED
        logger.info("Simulated flight paused at %s", self.position.tolist())

    def resume(self) -> None:
        """Continue the flight that was paused."""
        if self.phase != FlightPhase.PAUSED or self._resume_phase is None:
            raise SimulationError("No paused flight to resume")
        self.phase = self._resume_phase
        self._resume_phase = None
        logger.info("Simulated flight resumed (%s)", self.phase.value)

    def fly_home(self) -> None:
        """Return above home at the current altitude, then land there."""
        above_home = self.home.copy()
        above_home[1] = self.position[1]
        self._route = [above_home]
        self._route_index = 0
        self._land_on_arrival = True
        self._resume_phase = None
        self.phase = FlightPhase.FLYING
        logger.info("Simulated return to home %s", self.home.tolist())

    def land(self) -> None:
        """
        Descend to ground level at the current horizontal position.

        Raises:
            SimulationError: If the vehicle is already on the ground.
        """
        if self.on_ground:
            raise SimulationError(f"Cannot land while on the ground ({self.phase.value})")
        self._route = []
        self._route_index = 0
        self._land_on_arrival = False
        self._resume_phase = None
        self._begin_landing(self.position)
        logger.info("Simulated landing from %s", self.position.tolist())

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def step(self) -> dict:
        """
        Advance the simulation by one timestep.

        Returns:
            Observation dictionary for the new state.
        """
        sim = self.config.simulation
        vehicle = self.config.vehicle

        destination, speed = self._current_target()

        position = self._state_vector[self.POS_X:self.POS_Z + 1]
        velocity = self._state_vector[self.VEL_X:self.VEL_Z + 1]

        rotor_forces = equations.target_rotor_mix(
            speed,
            destination,
            position,
            velocity,
            vehicle.mass,
            vehicle.gravity,
            vehicle.inertia,
            vehicle.drag_factor,
            vehicle.thrust_factor,
            vehicle.rod_length,
            vehicle.yaw_factor,
        )
        thrust_torques = equations.rotor_mix_forward(
            rotor_forces,
            vehicle.drag_factor,
            vehicle.thrust_factor,
            vehicle.rod_length,
            vehicle.yaw_factor,
        )

        # The reduced model takes the unit thrust direction in place of attitude
        accel = equations.target_acceleration(speed, destination, position, velocity)
        thrust_direction = equations.safe_normalize(
            accel - np.array([0.0, vehicle.gravity, 0.0])
        )

        if sim.integrator == "euler":
            self._state_vector = self._euler_step(
                self._state_vector, thrust_torques, thrust_direction, sim.dt
            )
        else:
            self._state_vector = self._rk4_step(
                self._state_vector, thrust_torques, thrust_direction, sim.dt
            )
        self._state_vector = self._apply_state_constraints(self._state_vector)

        self._time += sim.dt
        self._step_count += 1
        self._last_rotor_forces = rotor_forces

        self._advance_phase()

        observation = self._get_observation()
        self._record_step(observation, rotor_forces, thrust_torques)
        logger.debug(
            "t=%.2f phase=%s pos=%s",
            self._time,
            self.phase.value,
            observation["position"].tolist(),
        )
        return observation

    def run_until_idle(self, max_steps: int | None = None) -> int:
        """
        Step until the vehicle is idle, landed or paused.

        Args:
            max_steps: Step limit (defaults to the configured max_steps).

        Returns:
            Number of steps taken.
        """
        limit = self.config.simulation.max_steps if max_steps is None else max_steps
        steps = 0
        while self.is_moving and steps < limit:
            self.step()
            steps += 1
        if self.is_moving:
            logger.warning("Simulation stopped after %d steps while %s", steps, self.phase.value)
        return steps

    def _current_target(self) -> tuple[np.ndarray, float]:
        """Destination and speed for the current phase."""
        position = self.position
        cruise = self.config.simulation.cruise_speed

        if self.phase == FlightPhase.FLYING and self._route_index < len(self._route):
            return self._route[self._route_index], cruise
        if self.phase == FlightPhase.LANDING and self._touchdown is not None:
            return self._touchdown, cruise
        # Hold position: zero target speed bleeds off the remaining velocity
        return position, 0.0

    def _advance_phase(self) -> None:
        """Move along the route once the current target is reached."""
        radius = self.config.simulation.arrival_radius

        if self.phase == FlightPhase.FLYING and self._route_index < len(self._route):
            target = self._route[self._route_index]
            if np.linalg.norm(self.position - target) <= radius:
                logger.info("Reached waypoint %d at t=%.2f", self._route_index, self._time)
                self._route_index += 1
                if self._route_index >= len(self._route):
                    if self._land_on_arrival:
                        self._land_on_arrival = False
                        self._begin_landing(target)
                    else:
                        self.phase = FlightPhase.IDLE
        elif self.phase == FlightPhase.LANDING:
            if self.position[1] - self.config.simulation.ground_level <= radius:
                self._state_vector[self.POS_Y] = self.config.simulation.ground_level
                self._state_vector[self.VEL_X:self.VEL_Z + 1] = 0.0
                self._state_vector[self.RATE_X:self.RATE_Z + 1] = 0.0
                self.phase = FlightPhase.LANDED
                logger.info("Landed at t=%.2f", self._time)

    def _begin_landing(self, above: np.ndarray) -> None:
        """Descend to ground level below the given point."""
        touchdown = np.array(above, dtype=np.float64)
        touchdown[1] = self.config.simulation.ground_level
        self._touchdown = touchdown
        self.phase = FlightPhase.LANDING

    def _euler_step(self, state, thrust_torques, thrust_direction, dt) -> np.ndarray:
        """Euler integration step."""
        deriv = self._compute_derivatives(state, thrust_torques, thrust_direction)
        return state + deriv * dt

    def _rk4_step(self, state, thrust_torques, thrust_direction, dt) -> np.ndarray:
        """4th-order Runge-Kutta integration step."""
        k1 = self._compute_derivatives(state, thrust_torques, thrust_direction)
        k2 = self._compute_derivatives(state + 0.5 * dt * k1, thrust_torques, thrust_direction)
        k3 = self._compute_derivatives(state + 0.5 * dt * k2, thrust_torques, thrust_direction)
        k4 = self._compute_derivatives(state + dt * k3, thrust_torques, thrust_direction)
        return state + (dt / 6.0) * (k1 + 2 * k2 + 2 * k3 + k4)

    def _compute_derivatives(
        self,
        state: np.ndarray,
        thrust_torques: np.ndarray,
        thrust_direction: np.ndarray,
    ) -> np.ndarray:
        """
        Compute state derivatives from the held thrust and torques.

        Args:
            state: Current state vector.
            thrust_torques: [thrust, torque_x, torque_y, torque_z].
            thrust_direction: Unit thrust direction in the inertial frame.

        Returns:
            State derivative vector.
        """
        vehicle = self.config.vehicle
        deriv = np.zeros(self.STATE_DIM)

        deriv[self.POS_X:self.POS_Z + 1] = state[self.VEL_X:self.VEL_Z + 1]
        deriv[self.VEL_X:self.VEL_Z + 1] = equations.linear_acceleration(
            thrust_torques[equations.THRUST],
            vehicle.mass,
            vehicle.gravity,
            thrust_direction,
        )
        deriv[self.ANG_X:self.ANG_Z + 1] = state[self.RATE_X:self.RATE_Z + 1]
        deriv[self.RATE_X:self.RATE_Z + 1] = equations.angular_acceleration(
            thrust_torques, vehicle.inertia
        )
        return deriv

    def _apply_state_constraints(self, state: np.ndarray) -> np.ndarray:
        """Clip angular velocities and wrap angles to [-pi, pi]."""
        result = state.copy()

        max_rate = self.config.simulation.max_angular_velocity
        result[self.RATE_X:self.RATE_Z + 1] = np.clip(
            result[self.RATE_X:self.RATE_Z + 1], -max_rate, max_rate
        )

        for i in range(self.ANG_X, self.ANG_Z + 1):
            result[i] = self._normalize_angle(result[i])

        return result

    @staticmethod
    def _normalize_angle(angle: float) -> float:
        """Normalize angle to [-pi, pi]."""
        return (angle + math.pi) % (2 * math.pi) - math.pi

    @staticmethod
    def _parse_route(waypoints) -> list[np.ndarray]:
        route = []
        for point in waypoints:
            vec = np.asarray(point, dtype=np.float64)
            if vec.shape != (3,):
                raise ValueError(f"Waypoint must have shape (3,), got {vec.shape}")
            route.append(vec.copy())
        return route

    # ------------------------------------------------------------------
    # Observation and history
    # ------------------------------------------------------------------

    def _get_observation(self) -> dict:
        return {
            "time": self._time,
            "phase": self.phase.value,
            "position": self._state_vector[self.POS_X:self.POS_Z + 1].copy(),
            "velocity": self._state_vector[self.VEL_X:self.VEL_Z + 1].copy(),
            "angular_position": self._state_vector[self.ANG_X:self.ANG_Z + 1].copy(),
            "angular_velocity": self._state_vector[self.RATE_X:self.RATE_Z + 1].copy(),
            "waypoint_index": self._route_index,
        }

    def _record_step(self, observation: dict, rotor_forces, thrust_torques) -> None:
        self._history.append({
            "time": self._time,
            "step": self._step_count,
            "phase": observation["phase"],
            "position": observation["position"].tolist(),
            "velocity": observation["velocity"].tolist(),
            "rotor_forces": np.asarray(rotor_forces).tolist(),
            "thrust": float(thrust_torques[equations.THRUST]),
        })

    def get_history(self) -> list[dict]:
        """
        Get recorded time series data.

        Returns:
            List of recorded step dictionaries.
        """
        return self._history.copy()

    @property
    def state(self) -> dict:
        """Get current state as dictionary."""
        return self._get_observation()

    @property
    def position(self) -> np.ndarray:
        return self._state_vector[self.POS_X:self.POS_Z + 1].copy()

    @property
    def velocity(self) -> np.ndarray:
        return self._state_vector[self.VEL_X:self.VEL_Z + 1].copy()

    @property
    def time(self) -> float:
        """Get current simulation time."""
        return self._time

    @property
    def rotor_forces(self) -> np.ndarray:
        """Rotor forces applied during the last step (unclamped)."""
        return self._last_rotor_forces.copy()

    @property
    def is_moving(self) -> bool:
        """True while the vehicle is following a route or landing."""
        return self.phase in (FlightPhase.FLYING, FlightPhase.LANDING)

    @property
    def on_ground(self) -> bool:
        """True once landed, or while idle within arrival radius of ground level."""
        if self.phase == FlightPhase.LANDED:
            return True
        sim = self.config.simulation
        return (
            self.phase == FlightPhase.IDLE
            and self.position[1] - sim.ground_level <= sim.arrival_radius
        )

    @property
    def is_active(self) -> bool:
        """True while the vehicle is moving or holding a paused flight."""
        return self.phase in (FlightPhase.FLYING, FlightPhase.PAUSED, FlightPhase.LANDING)
