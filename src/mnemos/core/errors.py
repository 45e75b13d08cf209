"""Exceptions raised by the Mnemos engine."""


class MnemosError(Exception):
    """Base class for engine errors."""


class InvalidInput(MnemosError):
    """The caller supplied a value the engine cannot act on.

    Covers out-of-range review quality, empty question lists and operations
    on sessions that already reached a terminal state.
    """


class NotFound(MnemosError):
    """An unknown session, schedule or question id was referenced."""


class DependencyUnavailable(MnemosError):
    """The persistence layer failed to serve a read or write."""
