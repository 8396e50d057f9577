"""
Domain errors raised by the takeoff engines.

Engines raise these instead of HTTPException so they stay usable outside a
request. main.py registers a handler that renders every TakeoffError as
{"detail": message, **extra} with the error's status code.
"""


class TakeoffError(Exception):
    status_code = 500

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"detail": self.message, **self.extra}


class ValidationError(TakeoffError):
    """Bad geometric input or malformed calibration/estimate parameters."""
    status_code = 400


class ForbiddenError(TakeoffError):
    status_code = 403


class NotFoundError(TakeoffError):
    status_code = 404


class ConflictError(TakeoffError):
    """
    The request is well-formed but the current state forbids it: recalibration
    without force, stale calibration version, illegal map status transition.
    `extra` carries what the caller needs to decide on a retry.
    """
    status_code = 409


class CalibrationTransactionError(TakeoffError):
    """Forced recalibration could not commit. The transaction was rolled back."""
    status_code = 500


class CostRulesError(TakeoffError):
    """COST_RULES_PATH is set but the rule table cannot be loaded."""
    status_code = 500
