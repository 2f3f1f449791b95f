"""Exceptions raised by the statistics routines"""


class StatisticsError(ValueError):
    """Statistical quantity cannot be computed from the given data"""


class EmptyInputError(StatisticsError):
    """No samples at all: the mean is undefined"""


class InsufficientSamplesError(StatisticsError):
    """Too few samples for the requested quantity (e.g. error with n < 2)"""


class ShapeMismatchError(StatisticsError):
    """Samples (locally or across ranks) do not share one shape"""


class ProtocolViolation(RuntimeError):
    """Ranks have issued diverging sequences of collective operations.

    This is only ever detected on a best-effort basis (see
    `ProcessGroup.check_collectives`); a rank that skips a collective call
    altogether will simply make its peers wait forever.
    """


class CfgException(Exception):
    """Invalid or unknown entries in a configuration file"""
