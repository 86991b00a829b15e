"""
Exception hierarchy for the mission client, coordinate transform and simulator.

Precondition failures are raised with a named type so callers can tell a
missing home fix apart from an empty mission or a dropped connection.
"""


class QuadMissionError(Exception):
    """Base exception for all quadcopter mission errors."""


class HomeNotSetError(QuadMissionError, RuntimeError):
    """Raised when a geodetic transform is requested before the home fix is latched."""


class EmptyMissionError(QuadMissionError, ValueError):
    """Raised when a mission is built from an empty waypoint list."""


class NotConnectedError(QuadMissionError, RuntimeError):
    """Raised when a remote call is attempted without an open transport."""


class DuplicateCallError(QuadMissionError, RuntimeError):
    """Raised when a call is issued while one with the same correlation id is pending."""


class TelemetryError(QuadMissionError, ValueError):
    """Raised by telemetry decoders for malformed payloads."""


class SimulationError(QuadMissionError, RuntimeError):
    """Raised when the simulator is asked to do something its state does not allow."""
