"""
Quadrotor Dynamics Package

Closed-form rotor mixing and equations of motion, plus a simulator that
flies waypoint routes with them.

Working frame (y-up):
    - X-axis: from the front rotor f1 to the back rotor f3
    - Y-axis: up, out of the rotor plane
    - Z-axis: from the right rotor f2 to the left rotor f4

Rotor layout (diamond):
    f1 front, f2 right, f3 back, f4 left

Angles are roll (x), yaw (y) and pitch (z). Functions taking a ``degrees``
flag convert angles and angular rates to radians before use.
"""

from . import equations
from .config import DynamicsConfig, SimulationParams, VehicleParams
from .equations import (
    angular_acceleration,
    angular_acceleration_body,
    euler_rate_from_body_rates,
    inverse_rotor_mix,
    linear_acceleration,
    linear_acceleration_body,
    rotate_body_to_inertial,
    rotate_inertial_to_body,
    rotation_matrix,
    rotor_mix_forward,
    target_rotor_mix,
)
from .simulator import FlightPhase, FlightSimulator

__all__ = [
    "equations",
    "DynamicsConfig",
    "VehicleParams",
    "SimulationParams",
    "FlightSimulator",
    "FlightPhase",
    "rotation_matrix",
    "rotate_body_to_inertial",
    "rotate_inertial_to_body",
    "euler_rate_from_body_rates",
    "target_rotor_mix",
    "inverse_rotor_mix",
    "rotor_mix_forward",
    "linear_acceleration",
    "angular_acceleration",
    "linear_acceleration_body",
    "angular_acceleration_body",
]
