"""
errors.py

Exception taxonomy for the food-web engine. Every error is raised
synchronously to the caller of the offending operation; nothing is retried
inside the package.
"""


class SimFoodWebError(Exception):
    """Base class for all simfoodweb errors."""


class InvalidParameterError(SimFoodWebError, ValueError):
    """Malformed configuration (bad connectance, negative masses, S < 1, ...)."""


class GenerationTimeoutError(SimFoodWebError, RuntimeError):
    """Network generation could not meet its constraints within the retry budget."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class IntegrationDivergedError(SimFoodWebError, ArithmeticError):
    """The ODE solver could not keep its step size above the configured floor."""

    def __init__(self, message: str, time: float = float("nan")):
        super().__init__(message)
        self.time = time


class EmptyWindowError(SimFoodWebError, IndexError):
    """A metric was requested over more samples than were recorded."""
