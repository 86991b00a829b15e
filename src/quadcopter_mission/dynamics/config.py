"""
Dynamics Configuration Module

Defines the physical parameters of the quadrotor and the settings used by
the flight simulator.

Working frame (y-up):
    - X-axis: from the front rotor f1 to the back rotor f3 (roll axis)
    - Y-axis: up, out of the rotor plane (thrust axis)
    - Z-axis: from the right rotor f2 to the left rotor f4 (pitch axis)

Gravity is a signed scalar along Y, so the default is negative.
"""

from dataclasses import dataclass, field

import numpy as np


@dataclass
class VehicleParams:
    """Physical parameters of the quadrotor."""

    mass: float = 1.0  # kg
    gravity: float = -9.81  # m/s^2, along +Y

    # Inertia tensor (diagonal, kg*m^2)
    Ixx: float = 0.0082
    Iyy: float = 0.0149  # yaw axis
    Izz: float = 0.0082

    # Mixing geometry
    drag_factor: float = 1.0  # thrust damping
    thrust_factor: float = 1.0  # per-rotor contribution to thrust/roll/pitch
    rod_length: float = 0.5  # m, distance between opposing rotors
    yaw_factor: float = 0.1  # per-rotor contribution to yaw torque

    @property
    def inertia(self) -> np.ndarray:
        """Diagonal moments of inertia as [Ixx, Iyy, Izz]."""
        return np.array([self.Ixx, self.Iyy, self.Izz])


@dataclass
class SimulationParams:
    """Simulation parameters."""

    dt: float = 0.02  # timestep in seconds
    integrator: str = "rk4"  # integration method: 'euler' or 'rk4'
    cruise_speed: float = 2.0  # m/s, target speed between waypoints
    arrival_radius: float = 0.1  # m, waypoint reached threshold
    ground_level: float = 0.0  # m, landing height in the working frame
    max_angular_velocity: float = 10.0  # rad/s, clip angular velocities
    max_steps: int = 20000  # hard stop for run_until_idle


@dataclass
class DynamicsConfig:
    """Vehicle and simulation configuration bundle."""

    vehicle: VehicleParams = field(default_factory=VehicleParams)
    simulation: SimulationParams = field(default_factory=SimulationParams)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "DynamicsConfig":
        """
        Create DynamicsConfig from a dictionary (e.g., from load_config).

        Args:
            config_dict: Configuration dictionary with optional "vehicle"
                and "simulation" sections.

        Returns:
            DynamicsConfig instance.
        """
        vehicle_dict = config_dict.get("vehicle", {})
        sim_dict = config_dict.get("simulation", {})

        integrator = sim_dict.get("integrator", "rk4")
        if integrator not in ("euler", "rk4"):
            raise ValueError(f"Unknown integrator: {integrator}")

        return cls(
            vehicle=VehicleParams(
                mass=vehicle_dict.get("mass", 1.0),
                gravity=vehicle_dict.get("gravity", -9.81),
                Ixx=vehicle_dict.get("Ixx", 0.0082),
                Iyy=vehicle_dict.get("Iyy", 0.0149),
                Izz=vehicle_dict.get("Izz", 0.0082),
                drag_factor=vehicle_dict.get("drag_factor", 1.0),
                thrust_factor=vehicle_dict.get("thrust_factor", 1.0),
                rod_length=vehicle_dict.get("rod_length", 0.5),
                yaw_factor=vehicle_dict.get("yaw_factor", 0.1),
            ),
            simulation=SimulationParams(
                dt=sim_dict.get("dt", 0.02),
                integrator=integrator,
                cruise_speed=sim_dict.get("cruise_speed", 2.0),
                arrival_radius=sim_dict.get("arrival_radius", 0.1),
                ground_level=sim_dict.get("ground_level", 0.0),
                max_angular_velocity=sim_dict.get("max_angular_velocity", 10.0),
                max_steps=sim_dict.get("max_steps", 20000),
            ),
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return {
            "vehicle": {
                "mass": self.vehicle.mass,
                "gravity": self.vehicle.gravity,
                "Ixx": self.vehicle.Ixx,
                "Iyy": self.vehicle.Iyy,
                "Izz": self.vehicle.Izz,
                "drag_factor": self.vehicle.drag_factor,
                "thrust_factor": self.vehicle.thrust_factor,
                "rod_length": self.vehicle.rod_length,
                "yaw_factor": self.vehicle.yaw_factor,
            },
            "simulation": {
                "dt": self.simulation.dt,
                "integrator": self.simulation.integrator,
                "cruise_speed": self.simulation.cruise_speed,
                "arrival_radius": self.simulation.arrival_radius,
                "ground_level": self.simulation.ground_level,
                "max_angular_velocity": self.simulation.max_angular_velocity,
                "max_steps": self.simulation.max_steps,
            },
        }
