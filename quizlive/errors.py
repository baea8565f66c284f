"""Recoverable session errors.

Every error here is raised before a session is mutated, so the caller can
report it back to the requesting connection and carry on.
"""


class SessionError(Exception):
    code = 'session_error'
    default_message = 'Session error'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {'message': self.message, 'code': self.code}


class SessionNotFound(SessionError):
    code = 'session_not_found'
    default_message = 'Game not found. Please check the PIN.'


class SessionAlreadyEnded(SessionError):
    code = 'session_already_ended'
    default_message = 'This game has already ended.'


class MissingQuizData(SessionError):
    code = 'missing_quiz_data'
    default_message = 'Quiz data required to create game.'


class InvalidQuizData(SessionError):
    code = 'invalid_quiz_data'
    default_message = 'Quiz data is invalid.'


class NameTaken(SessionError):
    code = 'name_taken'
    default_message = 'Player name already taken.'


class Unauthorized(SessionError):
    code = 'unauthorized'
    default_message = 'Unauthorized'
