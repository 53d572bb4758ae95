"""Error taxonomy for live session commands.

Every error carries a short ``code`` that is sent back on the command ack,
so clients can branch on it without parsing messages.
"""


class LiveQuizError(Exception):
    code = 'error'

    def __init__(self, message: str = ''):
        super().__init__(message)
        self.message = message

    def to_reply(self) -> dict:
        return {'success': False, 'error': self.message, 'code': self.code}


class ValidationError(LiveQuizError):
    code = 'validation'


class NotFoundError(LiveQuizError):
    code = 'not_found'


class AuthorizationError(LiveQuizError):
    code = 'unauthorized'


class StateError(LiveQuizError):
    code = 'invalid_state'


class OutOfQuestionsError(StateError):
    code = 'out_of_questions'


class DuplicateError(LiveQuizError):
    code = 'duplicate'


class DuplicateAnswerError(DuplicateError):
    pass


class LateError(LiveQuizError):
    code = 'late'


class LateAnswerError(LateError):
    pass


class CapacityError(LiveQuizError):
    code = 'capacity'
