# src/offspring_risk/errors.py
"""Exceptions raised while fitting offspring distributions and computing risk.

Every error keeps the inputs that triggered it on ``.inputs`` so callers can
report them.
"""


class OffspringRiskError(Exception):
    """Base class for all package errors."""

    def __init__(self, message, **inputs):
        super().__init__(message)
        self.inputs = inputs


class InvalidSampleError(OffspringRiskError, ValueError):
    """Secondary-case sample is empty or holds non count values."""


class InvalidParameterError(OffspringRiskError, ValueError):
    """A risk or selection parameter lies outside its valid range."""


class FitConvergenceError(OffspringRiskError, RuntimeError):
    """A single offspring family could not be fit to the sample."""

    def __init__(self, family, message, **inputs):
        super().__init__(f"{family}: {message}", **inputs)
        self.family = family


class NoConvergedModelError(OffspringRiskError, RuntimeError):
    """None of the candidate families produced a usable fit."""
