"""Exception taxonomy of the transport engine.

Stale actions and degenerate collision geometry are not errors and never
raise; they are handled where they are detected.
"""


class TransportError(Exception):
    """Base class for engine errors."""


class InvariantViolation(TransportError):
    """A physical or bookkeeping invariant broke; the time step must abort."""


class NegativeCrossSectionError(InvariantViolation, ValueError):
    """A channel reported a negative partial cross section."""


class InvalidHandleError(TransportError, LookupError):
    """A particle copy no longer matches the registry slot it points to."""


class ActionAlreadyPerformed(TransportError):
    """An action was asked to perform a second time."""
