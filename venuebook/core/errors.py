"""Error taxonomy.

Transport and protocol errors stay inside the venue adapter; simulation
errors are raised to the immediate caller.
"""

from __future__ import annotations

from typing import Optional


class VenuebookError(Exception):
    """Base class for all package errors."""


class VenueConnectionError(VenuebookError):
    """The transport failed to open or stay open."""


class ProtocolParseError(VenuebookError):
    """A frame was malformed or not understood.

    ``fatal`` marks venue-reported errors (e.g. a rejected subscription) after
    which the connection is recycled instead of the frame just being dropped.
    """

    def __init__(self, message: str, venue: Optional[str] = None, fatal: bool = False):
        super().__init__(message)
        self.venue = venue
        self.fatal = fatal


class SimulationError(VenuebookError):
    """Base class for errors raised by order simulation."""


class SimulationInputError(SimulationError):
    """The order request cannot be simulated as given."""


class NoLiquidityError(SimulationError):
    """The opposing side of the book is empty."""
