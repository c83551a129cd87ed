"""Exceptions raised by the controller.

Only configuration and lifecycle problems are raised. Numerical degeneracy
and safety-filter infeasibility are handled inside the tick and reported
through diagnostics.
"""


class ConfigurationError(ValueError):
    """Invalid configuration; the controller must not reach the running state."""


class ControllerStateError(RuntimeError):
    """A lifecycle operation was called in the wrong state."""
