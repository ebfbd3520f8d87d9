"""Errors raised by the game services.

Every error is local to the caller: a rejected action leaves the room
untouched and the route layer turns the error into a JSON response.
"""


class GameError(Exception):
    status_code = 400
    reason = 'error'

    def __init__(self, message=None, reason=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if reason is not None:
            self.reason = reason

    def to_dict(self):
        return {'error': self.reason, 'message': self.message}


class IllegalAction(GameError):
    """The caller may not do this now: wrong phase, wrong turn, no rations left..."""
    status_code = 409
    reason = 'illegal_action'


class CapacityExceeded(IllegalAction):
    reason = 'room_full'


class ValidationError(GameError):
    status_code = 400
    reason = 'invalid_input'


class NotFound(GameError):
    status_code = 404
    reason = 'not_found'


class StorageError(GameError):
    """Raised when the state store fails to load or save. Never retried here."""
    status_code = 503
    reason = 'storage_error'
