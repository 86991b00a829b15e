"""Tests for the simulated flight backend."""

import numpy as np
import pytest

from quadcopter_mission.dynamics import DynamicsConfig, FlightPhase, FlightSimulator
from quadcopter_mission.exceptions import SimulationError

# Straight line along +X at 2 m height
ROUTE = [[0.0, 2.0, 0.0], [3.0, 2.0, 0.0], [6.0, 2.0, 0.0]]


@pytest.fixture
def simulator():
    return FlightSimulator(home_position=(0.0, 2.0, 0.0))


class TestFlightSimulator:
    """Tests for FlightSimulator."""

    def test_initial_state(self, simulator):
        """Test the vehicle starts idle at home."""
        assert simulator.phase == FlightPhase.IDLE
        assert np.allclose(simulator.position, [0.0, 2.0, 0.0])
        assert simulator.time == 0.0
        assert not simulator.is_moving

    def test_config_from_dict(self):
        """Test that a config dict is converted."""
        sim = FlightSimulator({"simulation": {"dt": 0.05, "integrator": "euler"}})
        assert sim.config.simulation.dt == 0.05
        assert sim.config.simulation.integrator == "euler"

    def test_unknown_integrator_rejected(self):
        """Test that only euler and rk4 are accepted."""
        with pytest.raises(ValueError, match="integrator"):
            FlightSimulator({"simulation": {"integrator": "leapfrog"}})

    def test_rejects_bad_home(self):
        """Test that home must be a 3-vector."""
        with pytest.raises(ValueError, match="home_position"):
            FlightSimulator(home_position=(0.0, 1.0))

    def test_hover_holds_position(self, simulator):
        """Test that an idle vehicle hovers in place."""
        for _ in range(50):
            simulator.step()
        assert np.allclose(simulator.position, [0.0, 2.0, 0.0])
        assert np.allclose(simulator.rotor_forces, [9.81 / 4] * 4)

    def test_empty_route_rejected(self, simulator):
        """Test that an empty route cannot be started."""
        with pytest.raises(SimulationError):
            simulator.start_route([])

    @pytest.mark.parametrize("integrator", ["euler", "rk4"])
    def test_flies_route(self, integrator):
        """Test the vehicle reaches the last waypoint and goes idle."""
        config = DynamicsConfig.from_dict({"simulation": {"integrator": integrator}})
        sim = FlightSimulator(config, home_position=(0.0, 2.0, 0.0))

        sim.start_route(ROUTE)
        steps = sim.run_until_idle()

        assert 0 < steps < sim.config.simulation.max_steps
        assert sim.phase == FlightPhase.IDLE
        assert np.linalg.norm(sim.position - ROUTE[-1]) <= sim.config.simulation.arrival_radius

    def test_pause_holds_and_resume_continues(self, simulator):
        """Test pause stops progress until resume."""
        simulator.start_route(ROUTE)
        for _ in range(40):
            simulator.step()
        simulator.pause()
        assert simulator.phase == FlightPhase.PAUSED
        assert simulator.run_until_idle() == 0

        for _ in range(500):
            simulator.step()
        assert np.allclose(simulator.velocity, 0.0, atol=1e-3)
        index = simulator.state["waypoint_index"]

        simulator.resume()
        assert simulator.phase == FlightPhase.FLYING
        simulator.run_until_idle()
        assert simulator.phase == FlightPhase.IDLE
        assert simulator.state["waypoint_index"] > index

    def test_pause_requires_flight(self, simulator):
        """Test that an idle vehicle cannot be paused or resumed."""
        with pytest.raises(SimulationError):
            simulator.pause()
        with pytest.raises(SimulationError):
            simulator.resume()

    def test_update_route_keeps_progress(self, simulator):
        """Test that an updated route continues from the current index."""
        simulator.start_route(ROUTE)
        while simulator.state["waypoint_index"] < 2:
            simulator.step()

        new_route = [[0.0, 2.0, 0.0], [3.0, 2.0, 0.0], [6.0, 4.0, 0.0]]
        simulator.update_route(new_route)
        assert simulator.state["waypoint_index"] == 2
        simulator.run_until_idle()
        assert np.linalg.norm(simulator.position - new_route[-1]) <= 0.1

    def test_land_descends_in_place(self, simulator):
        """Test that land() touches down below the current position."""
        simulator.land()
        assert simulator.phase == FlightPhase.LANDING
        simulator.run_until_idle()

        assert simulator.phase == FlightPhase.LANDED
        assert simulator.position[1] == 0.0
        assert np.allclose(simulator.position[[0, 2]], [0.0, 0.0], atol=1e-6)
        assert np.allclose(simulator.velocity, 0.0)

    def test_land_rejected_on_ground(self, simulator):
        """Test that a landed or grounded vehicle cannot land again."""
        simulator.land()
        simulator.run_until_idle()
        assert simulator.on_ground
        with pytest.raises(SimulationError, match="on the ground"):
            simulator.land()
        assert simulator.phase == FlightPhase.LANDED

        grounded = FlightSimulator(home_position=(0.0, 0.0, 0.0))
        assert grounded.phase == FlightPhase.IDLE
        assert grounded.on_ground
        with pytest.raises(SimulationError):
            grounded.land()

    def test_fly_home_then_lands(self, simulator):
        """Test fly_home returns above home and lands."""
        simulator.start_route(ROUTE)
        simulator.run_until_idle()

        simulator.fly_home()
        simulator.run_until_idle()

        assert simulator.phase == FlightPhase.LANDED
        assert simulator.position[1] == 0.0
        # Lateral overshoot from the return leg
        assert abs(simulator.position[0]) < 2.0
        assert abs(simulator.position[2]) < 1e-6

    def test_history_records_unclamped_forces(self, simulator):
        """Test history entries carry time, position and rotor forces."""
        simulator.start_route(ROUTE)
        for _ in range(10):
            simulator.step()

        history = simulator.get_history()
        assert len(history) == 10
        assert history[-1]["step"] == 10
        assert history[-1]["time"] == pytest.approx(10 * simulator.config.simulation.dt)
        assert all(len(entry["rotor_forces"]) == 4 for entry in history)
        assert all(entry["phase"] == "flying" for entry in history)

    def test_history_is_a_copy(self, simulator):
        """Test that get_history does not expose internal state."""
        simulator.step()
        simulator.get_history().clear()
        assert len(simulator.get_history()) == 1
