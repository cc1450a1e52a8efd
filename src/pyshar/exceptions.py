"""
Exception classes for pyshar.

Every error is raised eagerly by the operation that detects it. Wrong input
classes raise the builtin ``TypeError``.
"""


class SharError(Exception):
    """Base exception for point pattern reconstruction errors."""

    pass


class InvalidWeightError(SharError, ValueError):
    """Raised when energy weights do not satisfy 0 < sum(weights) <= 1."""

    pass


class InvalidPatternError(SharError, ValueError):
    """Raised when a pattern is too small to estimate a summary function."""

    pass


class EmptyPatternError(SharError, ValueError):
    """Raised when an observed pattern contains no points."""

    pass


class WindowMismatchError(SharError, ValueError):
    """Raised when a window cannot hold the requested number of points."""

    pass


class MissingObservedPatternError(SharError, ValueError):
    """Raised when a reconstruction result carries no observed pattern."""

    pass


class ModeMismatchError(SharError):
    """Raised when summary curves estimated in different modes are compared."""

    pass
