"""
Custom exceptions for the drill engine.
"""


class DrillEngineException(Exception):
    """Base exception for all drill engine exceptions."""
    pass


class ValidationError(DrillEngineException):
    """Raised when validation fails."""
    pass


class NotFoundError(DrillEngineException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f"{resource} not found")


class ForbiddenError(DrillEngineException):
    """Raised when the actor does not own the resource being mutated."""

    def __init__(self, message: str = "You don't have permission"):
        super().__init__(message)


class ConflictError(DrillEngineException):
    """Raised when an action is not allowed in the current state."""
    pass


class OracleError(DrillEngineException):
    """Raised when the pronunciation oracle cannot produce a score."""
    pass
