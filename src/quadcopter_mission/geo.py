"""
Local <-> Geodetic Coordinate Transform

Maps between the local Cartesian working frame and latitude/longitude/
altitude, anchored at the vehicle's home fix.

Working frame convention (y-up):
    - X-axis: North  (maps to latitude)
    - Y-axis: Up     (maps to altitude through a fixed affine transform)
    - Z-axis: East   (maps to longitude)

Horizontal offsets use a local flat-earth approximation around the home
fix, which is accurate to well under a meter over mission-sized distances.
The transform is only defined once a home fix exists; every conversion
before that raises HomeNotSetError.
"""

import math
from dataclasses import dataclass

import numpy as np

from .exceptions import HomeNotSetError

# WGS-84 semi-major axis
EARTH_RADIUS_M = 6378137.0


@dataclass(frozen=True)
class HomeFix:
    """Geodetic anchor of the local frame."""

    latitude: float
    longitude: float


@dataclass
class GeoParams:
    """Scaling between local units and geodetic units."""

    horizontal_scale: float = 1.0  # meters per local unit on X/Z
    alt_scale: float = 1.0  # meters of altitude per local unit on Y
    alt_offset: float = -1.0  # meters, added after scaling


def local_x_to_latitude(home_lat: float, local_x: float, scale: float = 1.0) -> float:
    """Latitude of a point local_x units north of home."""
    return home_lat + math.degrees(local_x * scale / EARTH_RADIUS_M)


def local_z_to_longitude(
    home_lon: float, home_lat: float, local_z: float, scale: float = 1.0
) -> float:
    """Longitude of a point local_z units east of home."""
    radius = EARTH_RADIUS_M * math.cos(math.radians(home_lat))
    return home_lon + math.degrees(local_z * scale / radius)


def local_y_to_altitude(local_y: float, alt_scale: float = 1.0, alt_offset: float = -1.0) -> float:
    return local_y * alt_scale + alt_offset


class GeoTransform:
    """
    Bidirectional local/geodetic transform anchored at a home fix.

    Attributes:
        params: Scaling parameters.
        home: Home fix, or None until one is set.
    """

    def __init__(self, params: GeoParams | None = None, home: HomeFix | None = None):
        self.params = params or GeoParams()
        self.home = home

    @property
    def is_ready(self) -> bool:
        return self.home is not None

    def set_home(self, latitude: float, longitude: float) -> HomeFix:
        """Anchor the transform at the given fix."""
        self.home = HomeFix(float(latitude), float(longitude))
        return self.home

    def require_home(self) -> HomeFix:
        """Return the home fix, raising HomeNotSetError if there is none."""
        if self.home is None:
            raise HomeNotSetError(
                "Home fix is not set; no GPS position has been received yet"
            )
        return self.home

    def to_latitude(self, local_x: float) -> float:
        home = self.require_home()
        return local_x_to_latitude(home.latitude, local_x, self.params.horizontal_scale)

    def to_longitude(self, local_z: float) -> float:
        home = self.require_home()
        return local_z_to_longitude(
            home.longitude, home.latitude, local_z, self.params.horizontal_scale
        )

    def to_altitude(self, local_y: float) -> float:
        self.require_home()
        return local_y_to_altitude(local_y, self.params.alt_scale, self.params.alt_offset)

    def to_geodetic(self, local_position) -> tuple[float, float, float]:
        """
        Convert a local [x, y, z] point to (latitude, longitude, altitude).

        Raises:
            HomeNotSetError: If no home fix has been set.
            ValueError: If local_position is not a 3-vector.
        """
        x, y, z = (float(v) for v in _as_point(local_position))
        return self.to_latitude(x), self.to_longitude(z), self.to_altitude(y)

    def from_geodetic(self, latitude: float, longitude: float, altitude: float) -> np.ndarray:
        """
        Convert a geodetic fix to a local [x, y, z] point.

        Raises:
            HomeNotSetError: If no home fix has been set.
        """
        home = self.require_home()
        params = self.params

        x = math.radians(latitude - home.latitude) * EARTH_RADIUS_M / params.horizontal_scale
        radius = EARTH_RADIUS_M * math.cos(math.radians(home.latitude))
        z = math.radians(longitude - home.longitude) * radius / params.horizontal_scale
        y = (altitude - params.alt_offset) / params.alt_scale

        return np.array([x, y, z])


def _as_point(value) -> np.ndarray:
    point = np.asarray(value, dtype=np.float64)
    if point.shape != (3,):
        raise ValueError(f"Local position must have shape (3,), got {point.shape}")
    return point
