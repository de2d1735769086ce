"""Scheduling domain errors - raised by the service layer, mapped to HTTP in main.py"""


class SchedulingError(Exception):
    """Base class for scheduling failures"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(SchedulingError):
    """Meeting type, availability window or booking absent (or inactive)"""

    status_code = 404


class SlotUnavailable(SchedulingError):
    """Requested interval conflicts with a confirmed booking"""

    status_code = 409


class AlreadyCancelled(SchedulingError):
    status_code = 409


class InvalidRequest(SchedulingError):
    """Request violates notice, horizon, window or format rules"""

    status_code = 400


class ConfirmationCodeCollision(SchedulingError):
    """Insert hit the unique constraint on confirmation_code"""

    def __init__(self, code: str):
        super().__init__(f"Confirmation code {code} already exists")
        self.code = code


class ConfirmationCodeExhausted(SchedulingError):
    """Every regeneration attempt collided - the code generator is broken"""


class HostLockTimeout(SchedulingError):
    """Another booking write on the same host held the lock too long"""

    status_code = 503
