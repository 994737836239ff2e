"""Errors raised by the trip planner.

An infeasible trip is not an error: it shows up as a negative arrival SOC on
the destination stop. These exceptions cover bad input and bad addressing.
"""


class TripPlannerError(Exception):
    """Base class for planner errors."""


class InvalidVehicleProfileError(TripPlannerError, ValueError):
    """Vehicle profile has a non-positive battery, efficiency, or charge rate."""


class InvalidPlanningRequestError(TripPlannerError, ValueError):
    """Planning request is missing inputs or has out-of-range values."""


class GeocodingError(TripPlannerError):
    """Origin or destination text could not be resolved to coordinates."""


class UnknownSlotError(TripPlannerError, KeyError):
    """No charging stop with this slot index exists in the base plan."""


class UnknownStationError(TripPlannerError, KeyError):
    """Station id is not present in the candidate store."""


class StalePlanError(TripPlannerError):
    """A newer planning request superseded this one."""
