"""
Quadrotor Equations of Motion

Stateless, deterministic functions over the vehicle's physical parameters.
Nothing here holds state, so every function is safe to call from any thread.

Euler angle convention:
    euler = [phi, theta, psi] = rotation about [x, y, z]
    (roll about the front-back axis, yaw about the vertical y-axis,
    pitch about the left-right z-axis in the y-up working frame).

Rotor layout (diamond, seen from above, y-axis out of the page):

            f1
            O
          /   \\
     f4 O       O f2
          \\   /
            O
            f3

    x-axis: f1 to f3 (roll torque from f3 - f1)
    z-axis: f2 to f4 (pitch torque from f4 - f2)

Thrust/torque 4-vector layout: [thrust, torque_x, torque_y, torque_z]
    (torque_x is roll, torque_y is yaw, torque_z is pitch).

Singularities:
    euler_rate_from_body_rates divides by cos(phi) and cos(psi). Near those
    singular points the result is +/-inf or NaN; it is returned as-is so the
    caller decides how to handle the invalid geometry.
"""

import numpy as np

# Indices into the thrust/torque 4-vector
THRUST = 0
TORQUE_X = 1
TORQUE_Y = 2
TORQUE_Z = 3

# Vectors shorter than this normalize to zero
NORMALIZE_EPSILON = 1e-5


def _as_vector(value, size: int, name: str) -> np.ndarray:
    """Convert input to a float64 vector of the given size."""
    vec = np.asarray(value, dtype=np.float64)
    if vec.shape != (size,):
        raise ValueError(f"{name} must have shape ({size},), got {vec.shape}")
    return vec


def _to_radians(angles: np.ndarray, degrees: bool) -> np.ndarray:
    return np.radians(angles) if degrees else angles


def safe_normalize(vector) -> np.ndarray:
    """
    Return the unit vector in the direction of ``vector``.

    Vectors with magnitude below NORMALIZE_EPSILON normalize to zero instead
    of dividing by (almost) zero.
    """
    vec = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(vec)
    if norm < NORMALIZE_EPSILON:
        return np.zeros_like(vec)
    return vec / norm


def rotation_matrix(euler, degrees: bool = True) -> np.ndarray:
    """
    Build the body-to-inertial rotation matrix.

    Args:
        euler: Euler angles [phi, theta, psi] about [x, y, z].
        degrees: Whether the angles are given in degrees.

    Returns:
        3x3 rotation matrix R such that v_inertial = R @ v_body.
    """
    ux, uy, uz = _to_radians(_as_vector(euler, 3, "euler"), degrees)

    sux, cux = np.sin(ux), np.cos(ux)
    suy, cuy = np.sin(uy), np.cos(uy)
    suz, cuz = np.sin(uz), np.cos(uz)

    return np.array([
        [suz * sux * suy + cuz * cuy, cuz * sux * suy - suz * cuy, cux * suy],
        [suz * cux, cuz * cux, -sux],
        [suz * sux * cuy - cuz * suy, cuz * sux * cuy + suz * suy, cux * cuy],
    ])


def rotate_body_to_inertial(body_vector, euler, degrees: bool = True) -> np.ndarray:
    """
    Rotate a body-frame vector into the inertial frame.

    Args:
        body_vector: Vector in the body frame (e.g. velocity [u, v, w]).
        euler: Euler angles [phi, theta, psi].
        degrees: Whether the angles are given in degrees.

    Returns:
        The vector expressed in the inertial frame.
    """
    vec = _as_vector(body_vector, 3, "body_vector")
    return rotation_matrix(euler, degrees) @ vec


def rotate_inertial_to_body(inertial_vector, euler, degrees: bool = True) -> np.ndarray:
    """Inverse of rotate_body_to_inertial (R is orthonormal, so R^-1 = R^T)."""
    vec = _as_vector(inertial_vector, 3, "inertial_vector")
    return rotation_matrix(euler, degrees).T @ vec


def euler_rate_from_body_rates(body_rates, euler, degrees: bool = True) -> np.ndarray:
    """
    Map body angular rates to Euler angle rates (inverse kinematic Jacobian).

    Args:
        body_rates: Body angular velocity [p, r, q].
        euler: Euler angles [phi, theta, psi].
        degrees: Whether angles and rates are given in degrees. The result is
            in the same unit as the input rates.

    Returns:
        Euler angle rates [phi_dot, theta_dot, psi_dot]. Contains inf/NaN
        when cos(phi) or cos(psi) is zero.
    """
    p, r, q = _as_vector(body_rates, 3, "body_rates")
    angles = _to_radians(_as_vector(euler, 3, "euler"), degrees)
    ux, uz = angles[0], angles[2]

    cos_ux = np.cos(ux)
    tan_ux = np.tan(ux)
    sin_uz = np.sin(uz)
    cos_uz = np.cos(uz)

    with np.errstate(divide="ignore", invalid="ignore"):
        dx = r * cos_uz - p * sin_uz
        dy = p * np.divide(cos_uz, cos_ux) + r * np.divide(sin_uz, cos_uz)
        dz = q + p * cos_uz * tan_ux + r * sin_uz * tan_ux

    return np.array([dx, dy, dz])


def target_acceleration(target_speed: float, destination, position, velocity) -> np.ndarray:
    """
    Acceleration that turns the current velocity into the desired one.

    The desired velocity points from position to destination with magnitude
    target_speed (zero once the destination is reached).
    """
    destination = _as_vector(destination, 3, "destination")
    position = _as_vector(position, 3, "position")
    velocity = _as_vector(velocity, 3, "velocity")

    target_velocity = safe_normalize(destination - position) * target_speed
    return target_velocity - velocity


def target_thrust_torques(
    target_speed: float,
    destination,
    position,
    velocity,
    mass: float,
    gravity: float,
    inertia,
) -> np.ndarray:
    """
    Compute the thrust and torques needed to head toward a destination.

    The desired velocity points at the destination with magnitude
    target_speed; the required acceleration is the velocity error. Thrust is
    the mass times the magnitude of (acceleration - gravity). Torques are a
    proportional approximation: the normalized acceleration direction scaled
    by each axis's moment of inertia.

    Args:
        target_speed: Desired speed toward the destination (m/s).
        destination: Target position [x, y, z].
        position: Current position [x, y, z].
        velocity: Current velocity [vx, vy, vz].
        mass: Vehicle mass (kg).
        gravity: Signed gravity along y (m/s^2), negative for y-up.
        inertia: Diagonal moments of inertia [Ixx, Iyy, Izz].

    Returns:
        Thrust/torque 4-vector [thrust, torque_x, torque_y, torque_z].
    """
    inertia = _as_vector(inertia, 3, "inertia")
    accel = target_acceleration(target_speed, destination, position, velocity)

    # Cosines and sines cancel out, leaving |a - g|
    thrust_acceleration = np.sqrt(
        accel[0] ** 2 + (accel[1] - gravity) ** 2 + accel[2] ** 2
    )
    thrust = mass * thrust_acceleration

    torques = safe_normalize(accel) * inertia

    return np.array([thrust, torques[0], torques[1], torques[2]])


def inverse_rotor_mix(
    thrust_torques,
    drag_factor: float,
    thrust_factor: float,
    rod_length: float,
    yaw_factor: float,
) -> np.ndarray:
    """
    Solve for the four rotor forces that produce a thrust/torque vector.

    Closed-form inverse of rotor_mix_forward. No clamping is applied: the
    returned forces may be negative, and it is up to the caller to decide
    whether that is acceptable.

    Returns:
        Signed rotor forces [f1, f2, f3, f4].
    """
    thrust, torque_x, torque_y, torque_z = _as_vector(
        thrust_torques, 4, "thrust_torques"
    )

    W = thrust / (drag_factor * thrust_factor)
    X = torque_x / (rod_length * thrust_factor)
    Y = torque_y / yaw_factor
    Z = torque_z / (rod_length * thrust_factor)

    f1 = (W - Y - 2.0 * X) / 4.0
    f3 = X + f1
    f2 = (Y - Z + f1 + f3) / 2.0
    f4 = Z + f2

    return np.array([f1, f2, f3, f4])


def target_rotor_mix(
    target_speed: float,
    destination,
    position,
    velocity,
    mass: float,
    gravity: float,
    inertia,
    drag_factor: float,
    thrust_factor: float,
    rod_length: float,
    yaw_factor: float,
) -> np.ndarray:
    """
    Compute signed rotor forces that steer toward a destination.

    Combines target_thrust_torques and inverse_rotor_mix.

    Returns:
        Signed rotor forces [f1, f2, f3, f4] (unclamped).
    """
    thrust_torques = target_thrust_torques(
        target_speed, destination, position, velocity, mass, gravity, inertia
    )
    return inverse_rotor_mix(
        thrust_torques, drag_factor, thrust_factor, rod_length, yaw_factor
    )


def rotor_mix_forward(
    rotor_forces,
    drag_factor: float,
    thrust_factor: float,
    rod_length: float,
    yaw_factor: float,
) -> np.ndarray:
    """
    Compute total thrust and torques from individual rotor forces.

    Only the sign and magnitude of each rotor force is needed, and only the
    sign and magnitude of the resulting thrust and torques is returned.

    Args:
        rotor_forces: Signed rotor forces [f1, f2, f3, f4] in the diamond layout.
        drag_factor: Damping factor on the thrust.
        thrust_factor: Contribution of each rotor to thrust, roll and pitch.
        rod_length: Distance between two opposing rotors.
        yaw_factor: Contribution of each rotor to the yaw torque.

    Returns:
        Thrust/torque 4-vector [thrust, roll, yaw, pitch].
    """
    f1, f2, f3, f4 = _as_vector(rotor_forces, 4, "rotor_forces")

    return np.array([
        drag_factor * thrust_factor * (f1 + f2 + f3 + f4),
        rod_length * thrust_factor * (f3 - f1),
        yaw_factor * (f2 + f4 - f1 - f3),
        rod_length * thrust_factor * (f4 - f2),
    ])


def linear_acceleration(thrust: float, mass: float, gravity: float, euler) -> np.ndarray:
    """
    Reduced inertial-frame linear acceleration.

    Drops the trigonometric coupling of the full model and treats ``euler``
    as the thrust direction: a = (T/m) * u + [0, g, 0]. Passing the unit
    vector along (a_target - g) reproduces a_target exactly.

    Args:
        thrust: Total thrust magnitude (N).
        mass: Vehicle mass (kg).
        gravity: Signed gravity along y (m/s^2).
        euler: Thrust direction / attitude vector, used linearly.

    Returns:
        Acceleration [ax, ay, az] in the inertial frame.
    """
    u = _as_vector(euler, 3, "euler")
    thrust_acceleration = thrust / mass
    return np.array([
        thrust_acceleration * u[0],
        gravity + thrust_acceleration * u[1],
        thrust_acceleration * u[2],
    ])


def angular_acceleration(torques, inertia) -> np.ndarray:
    """
    Reduced angular acceleration, torque over inertia per axis.

    Args:
        torques: Thrust/torque 4-vector [thrust, torque_x, torque_y, torque_z].
        inertia: Diagonal moments of inertia [Ixx, Iyy, Izz].

    Returns:
        Angular acceleration [x, y, z].
    """
    torques = _as_vector(torques, 4, "torques")
    inertia = _as_vector(inertia, 3, "inertia")
    return torques[TORQUE_X:] / inertia


def linear_acceleration_body(
    thrust: float,
    mass: float,
    gravity: float,
    wind_disturbance,
    body_velocity,
    body_angular_velocity,
    euler,
    degrees: bool = True,
) -> np.ndarray:
    """
    Full body-frame linear acceleration including Coriolis terms.

    Thrust acts along -y in the body frame and ``gravity`` is the positive
    magnitude, so hover is thrust = mass * gravity on level attitude.

    Args:
        thrust: Total thrust (N).
        mass: Vehicle mass (kg).
        gravity: Gravity magnitude (m/s^2).
        wind_disturbance: External force [Fx, Fy, Fz] in the body frame (N).
        body_velocity: Velocity [u, v, w] in the body frame.
        body_angular_velocity: Angular velocity in the body frame.
        euler: Euler angles [phi, theta, psi].
        degrees: Whether angles and angular rates are given in degrees. Rates
            are converted to rad/s before the Coriolis terms either way.

    Returns:
        Acceleration [ax, ay, az] in the body frame.
    """
    wind = _as_vector(wind_disturbance, 3, "wind_disturbance")
    vx, vy, vz = _as_vector(body_velocity, 3, "body_velocity")
    wx, wy, wz = _to_radians(
        _as_vector(body_angular_velocity, 3, "body_angular_velocity"), degrees
    )
    angles = _to_radians(_as_vector(euler, 3, "euler"), degrees)
    ux, uz = angles[0], angles[2]

    sin_ux, cos_ux = np.sin(ux), np.cos(ux)
    sin_uz, cos_uz = np.sin(uz), np.cos(uz)

    return np.array([
        wz * vy - wy * vz + gravity * sin_uz * cos_ux + wind[0] / mass,
        wx * vz - wz * vx + gravity * cos_ux * cos_uz + (wind[1] - thrust) / mass,
        wy * vx - wx * vy - gravity * sin_ux + wind[2] / mass,
    ])


def angular_acceleration_body(
    torques,
    inertia,
    angular_wind_disturbance,
    body_angular_velocity,
    degrees: bool = True,
) -> np.ndarray:
    """
    Full body-frame angular acceleration including gyroscopic coupling.

    Args:
        torques: Thrust/torque 4-vector [thrust, torque_x, torque_y, torque_z].
        inertia: Diagonal moments of inertia [Ixx, Iyy, Izz].
        angular_wind_disturbance: External torque [Mx, My, Mz] (N*m).
        body_angular_velocity: Angular velocity in the body frame.
        degrees: Whether the angular velocity is given in degrees. It is
            converted to rad/s before the gyroscopic terms either way.

    Returns:
        Angular acceleration [x, y, z] in rad/s^2.
    """
    torques = _as_vector(torques, 4, "torques")
    Ixx, Iyy, Izz = _as_vector(inertia, 3, "inertia")
    mx, my, mz = _as_vector(angular_wind_disturbance, 3, "angular_wind_disturbance")
    wx, wy, wz = _to_radians(
        _as_vector(body_angular_velocity, 3, "body_angular_velocity"), degrees
    )

    return np.array([
        ((Iyy - Izz) * wy * wz + torques[TORQUE_X] + mx) / Ixx,
        ((Izz - Ixx) * wx * wz + torques[TORQUE_Y] + my) / Iyy,
        ((Ixx - Iyy) * wx * wy + torques[TORQUE_Z] + mz) / Izz,
    ])
