"""
Quadcopter Mission Utilities Package

Shared utilities for the mission client and the simulator:
- Configuration loading (YAML/JSON with environment variable overrides)
- Flight history logging to JSON
- Plotting of simulated routes and rotor forces

Configuration supports both file-based and environment variable sources.
"""

import datetime
import json
import logging
import os
from pathlib import Path

import numpy as np
import yaml
from dotenv import load_dotenv

from ..client.telemetry import TOPIC_TYPES

__all__ = [
    "load_config",
    "get_default_config",
    "FlightLogger",
    "Plotter",
]

logger = logging.getLogger(__name__)

DEFAULT_SUBSCRIPTIONS = list(TOPIC_TYPES)


def get_default_config() -> dict:
    """
    Get default configuration values.

    These defaults are used when no configuration file is provided
    or when specific values are missing.

    Returns:
        Dictionary with default configuration values.
    """
    return {
        "connection": {
            "client_id": "0",
            "host": "localhost",
            "port": 9090,  # rosbridge default
            "topic_prefix": "/dji_sdk/",
            "subscriptions": list(DEFAULT_SUBSCRIPTIONS),
            "simulate": False,
        },
        "vehicle": {
            "mass": 1.0,  # kg
            "gravity": -9.81,  # m/s^2 along +Y
            "Ixx": 0.0082,
            "Iyy": 0.0149,
            "Izz": 0.0082,
            "drag_factor": 1.0,
            "thrust_factor": 1.0,
            "rod_length": 0.5,  # m
            "yaw_factor": 0.1,
        },
        "simulation": {
            "dt": 0.02,  # seconds
            "integrator": "rk4",
            "cruise_speed": 2.0,  # m/s
            "arrival_radius": 0.1,  # m
            "ground_level": 0.0,
            "max_angular_velocity": 10.0,  # rad/s
            "max_steps": 20000,
        },
        "geo": {
            "horizontal_scale": 1.0,  # meters per local unit
            "alt_scale": 1.0,
            "alt_offset": -1.0,  # meters
        },
        "mission": {
            "velocity_range": 15.0,  # m/s
            "idle_velocity": 15.0,  # m/s
            "action_on_finish": "AUTO_LANDING",
            "mission_exec_times": 1,
            "yaw_mode": "AUTO",
            "trace_mode": "POINT",
            "action_on_rc_lost": "FREE",
            "gimbal_pitch_mode": "FREE",
            "damping_distance": 3.0,  # m
            "turn_mode": "CLOCKWISE",
            "action_time_limit": 30,  # s
        },
        "logging": {
            "output_dir": "flights",
            "log_interval": 1,  # steps between log entries
        },
    }


def load_config(
    config_path: str | Path | None = None,
    load_env: bool = True,
) -> dict:
    """
    Load configuration from file with environment variable overrides.

    Configuration loading follows this priority (highest to lowest):
    1. Environment variables (from .env file or system)
    2. Config file (YAML or JSON)
    3. Default values

    Environment variables override config file values:
    - QUADMISSION_CLIENT_ID -> config["connection"]["client_id"]
    - QUADMISSION_HOST -> config["connection"]["host"]
    - QUADMISSION_PORT -> config["connection"]["port"]
    - QUADMISSION_SIMULATE -> config["connection"]["simulate"]
    - QUADMISSION_TOPIC_PREFIX -> config["connection"]["topic_prefix"]
    - QUADMISSION_MASS -> config["vehicle"]["mass"]
    - QUADMISSION_GRAVITY -> config["vehicle"]["gravity"]
    - QUADMISSION_DT -> config["simulation"]["dt"]
    - QUADMISSION_ALT_SCALE -> config["geo"]["alt_scale"]

    Args:
        config_path: Path to YAML or JSON configuration file.
                    If None, only defaults and env vars are used.
        load_env: Whether to load .env file and apply env var overrides.

    Returns:
        Merged configuration dictionary.

    Raises:
        FileNotFoundError: If config_path is specified but file doesn't exist.
        PermissionError: If config file cannot be read.
        ValueError: If config file format is unsupported or malformed.
    """
    config = get_default_config()

    if config_path is not None:
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if not config_path.is_file():
            raise ValueError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_path) as f:
                if config_path.suffix in (".yaml", ".yml"):
                    file_config = yaml.safe_load(f)
                elif config_path.suffix == ".json":
                    file_config = json.load(f)
                else:
                    raise ValueError(f"Unsupported config format: {config_path.suffix}")
        except PermissionError as e:
            raise PermissionError(
                f"Cannot read configuration file: {config_path}"
            ) from e
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed configuration file: {config_path}") from e

        if file_config:
            if not isinstance(file_config, dict):
                raise ValueError(f"Configuration file must contain a mapping: {config_path}")
            config = _deep_merge(config, file_config)

    if load_env:
        load_dotenv()
        config = _apply_env_overrides(config)

    return config


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary (values take precedence).

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Not a boolean: {value}")


def _apply_env_overrides(config: dict) -> dict:
    """
    Apply environment variable overrides to configuration.

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with env var overrides applied.
    """
    env_mappings = {
        "QUADMISSION_CLIENT_ID": ("connection", "client_id", str),
        "QUADMISSION_HOST": ("connection", "host", str),
        "QUADMISSION_PORT": ("connection", "port", int),
        "QUADMISSION_SIMULATE": ("connection", "simulate", _parse_bool),
        "QUADMISSION_TOPIC_PREFIX": ("connection", "topic_prefix", str),
        "QUADMISSION_MASS": ("vehicle", "mass", float),
        "QUADMISSION_GRAVITY": ("vehicle", "gravity", float),
        "QUADMISSION_DT": ("simulation", "dt", float),
        "QUADMISSION_ALT_SCALE": ("geo", "alt_scale", float),
    }

    for env_var, (section, config_key, type_fn) in env_mappings.items():
        value = os.getenv(env_var)
        if value is not None:
            try:
                config.setdefault(section, {})[config_key] = type_fn(value)
            except ValueError:
                logger.warning(
                    "Invalid value for %s: '%s', using default", env_var, value
                )

    return config


def _json_serializer(obj):
    """
    Custom JSON serializer for objects not serializable by default json.dump.

    Handles numpy arrays and scalars, datetime objects and Path objects.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()
    if isinstance(obj, Path):
        return str(obj)
    raise TypeError("Object is not JSON serializable")


class FlightLogger:
    """
    Flight history logger.

    Keeps every log_interval-th simulator observation and writes them, with
    run metadata, to a JSON file.

    Attributes:
        output_dir (Path): Directory for log files.
        flight_name (str): Name of current flight, used as the file stem.
        log_interval (int): Steps between log entries.
    """

    def __init__(
        self,
        output_dir: str | Path = "flights",
        flight_name: str | None = None,
        log_interval: int = 1,
    ):
        if log_interval < 1:
            raise ValueError(f"log_interval must be >= 1, got {log_interval}")
        self.output_dir = Path(output_dir)
        self.flight_name = flight_name or datetime.datetime.now().strftime(
            "flight_%Y%m%d_%H%M%S"
        )
        self.log_interval = log_interval
        self.metadata: dict = {}
        self.data: list[dict] = []
        self._step_count = 0

    def log(self, observation: dict) -> None:
        """Record one simulator observation if it falls on the interval."""
        self._step_count += 1
        if self._step_count % self.log_interval == 0:
            self.data.append({"step": self._step_count, **observation})

    def save(self) -> Path:
        """
        Save logged data to file.

        Returns:
            Path to saved log file.
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        log_path = self.output_dir / f"{self.flight_name}.json"
        with open(log_path, "w") as f:
            json.dump(
                {"metadata": self.metadata, "steps": self.data},
                f,
                indent=2,
                default=_json_serializer,
            )
        logger.info("Flight log saved to %s", log_path)
        return log_path

    def reset(self) -> None:
        """Reset logger state for a new flight."""
        self.metadata = {}
        self.data = []
        self._step_count = 0


class Plotter:
    """
    Plotting utility for simulated flights.

    Attributes:
        figsize (tuple): Default figure size.
    """

    def __init__(self, figsize: tuple[int, int] = (10, 6)):
        self.figsize = figsize

    def plot_route(
        self,
        steps: list[dict],
        waypoints=None,
        save_path: str | Path | None = None,
    ):
        """
        Plot the flown ground track (X north against Z east) and altitude.

        Args:
            steps: Logged observations with "time" and "position".
            waypoints: Optional [x, y, z] route points to overlay.
            save_path: Optional path to save figure.
        """
        import matplotlib.pyplot as plt

        positions = np.array([step["position"] for step in steps]).reshape(-1, 3)
        times = np.array([step["time"] for step in steps])

        fig, (ax_track, ax_alt) = plt.subplots(1, 2, figsize=self.figsize)

        ax_track.plot(positions[:, 2], positions[:, 0], label="Vehicle")
        if waypoints is not None and len(waypoints):
            route = np.asarray(waypoints, dtype=np.float64).reshape(-1, 3)
            ax_track.plot(route[:, 2], route[:, 0], "o--", label="Waypoints")
        ax_track.set_xlabel("Z / East (m)")
        ax_track.set_ylabel("X / North (m)")
        ax_track.set_title("Ground Track")
        ax_track.legend()
        ax_track.grid(True)

        ax_alt.plot(times, positions[:, 1])
        ax_alt.set_xlabel("Time (s)")
        ax_alt.set_ylabel("Y / Up (m)")
        ax_alt.set_title("Height")
        ax_alt.grid(True)

        fig.tight_layout()
        if save_path:
            fig.savefig(save_path)
        return fig, (ax_track, ax_alt)

    def plot_rotor_forces(self, history: list[dict], save_path: str | Path | None = None):
        """
        Plot the four (unclamped) rotor forces over time.

        Args:
            history: Simulator history with "time" and "rotor_forces".
            save_path: Optional path to save figure.
        """
        import matplotlib.pyplot as plt

        times = np.array([entry["time"] for entry in history])
        forces = np.array([entry["rotor_forces"] for entry in history]).reshape(-1, 4)

        fig, ax = plt.subplots(figsize=self.figsize)
        for i, name in enumerate(("f1 front", "f2 right", "f3 back", "f4 left")):
            ax.plot(times, forces[:, i], label=name)
        ax.axhline(0.0, color="black", linewidth=0.5)
        ax.set_xlabel("Time (s)")
        ax.set_ylabel("Rotor force")
        ax.set_title("Rotor Forces")
        ax.legend()
        ax.grid(True)

        if save_path:
            fig.savefig(save_path)
        return fig, ax
