"""
Mission Configuration

Typed view over the dictionary produced by load_config(). Each section maps
to one dataclass:

    connection  -> ConnectionParams
    vehicle     -> VehicleParams      (dynamics.config)
    simulation  -> SimulationParams   (dynamics.config)
    geo         -> GeoParams          (geo)
    mission     -> MissionTaskParams  (mission)
"""

from dataclasses import dataclass, field

from .client.telemetry import TOPIC_TYPES
from .dynamics.config import DynamicsConfig
from .geo import GeoParams
from .mission import MissionTaskParams


@dataclass
class ConnectionParams:
    """Where and how to reach the vehicle."""

    client_id: str = "0"
    host: str = "localhost"
    port: int = 9090
    topic_prefix: str = "/dji_sdk/"
    subscriptions: list[str] = field(default_factory=lambda: list(TOPIC_TYPES))
    simulate: bool = False

    @property
    def endpoint(self) -> str:
        return f"ws://{self.host}:{self.port}"


@dataclass
class MissionConfig:
    """Complete configuration for a client, its transform and the simulator."""

    connection: ConnectionParams = field(default_factory=ConnectionParams)
    dynamics: DynamicsConfig = field(default_factory=DynamicsConfig)
    geo: GeoParams = field(default_factory=GeoParams)
    mission: MissionTaskParams = field(default_factory=MissionTaskParams)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "MissionConfig":
        """
        Create MissionConfig from a dictionary (e.g., from load_config).

        Args:
            config_dict: Configuration dictionary. Missing sections and
                keys fall back to defaults.

        Returns:
            MissionConfig instance.

        Raises:
            ValueError: If a topic, integrator or enum name is unknown.
        """
        conn_dict = config_dict.get("connection", {})
        geo_dict = config_dict.get("geo", {})

        subscriptions = list(conn_dict.get("subscriptions", list(TOPIC_TYPES)))
        unknown = [topic for topic in subscriptions if topic not in TOPIC_TYPES]
        if unknown:
            raise ValueError(f"Unknown subscription topics: {unknown}")

        return cls(
            connection=ConnectionParams(
                client_id=str(conn_dict.get("client_id", "0")),
                host=conn_dict.get("host", "localhost"),
                port=int(conn_dict.get("port", 9090)),
                topic_prefix=conn_dict.get("topic_prefix", "/dji_sdk/"),
                subscriptions=subscriptions,
                simulate=bool(conn_dict.get("simulate", False)),
            ),
            dynamics=DynamicsConfig.from_dict(config_dict),
            geo=GeoParams(
                horizontal_scale=geo_dict.get("horizontal_scale", 1.0),
                alt_scale=geo_dict.get("alt_scale", 1.0),
                alt_offset=geo_dict.get("alt_offset", -1.0),
            ),
            mission=MissionTaskParams.from_dict(config_dict.get("mission", {})),
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return {
            "connection": {
                "client_id": self.connection.client_id,
                "host": self.connection.host,
                "port": self.connection.port,
                "topic_prefix": self.connection.topic_prefix,
                "subscriptions": list(self.connection.subscriptions),
                "simulate": self.connection.simulate,
            },
            **self.dynamics.to_dict(),
            "geo": {
                "horizontal_scale": self.geo.horizontal_scale,
                "alt_scale": self.geo.alt_scale,
                "alt_offset": self.geo.alt_offset,
            },
            "mission": self.mission.to_dict(),
        }
