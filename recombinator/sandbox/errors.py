from typing import Optional

from ..errors import RecombinatorError


class SandboxError(RecombinatorError):
    """
    Evaluation of a snippet failed.

    Raised inside the evaluator and returned to callers wrapped in ``Err``;
    ``previous`` keeps the Python exception that caused it, if any.
    """

    DIVISION_BY_ZERO = 1
    TYPE_ERROR = 2
    VALUE_ERROR = 3
    LIMIT_EXCEEDED = 4
    TIMEOUT = 5
    UNSUPPORTED = 6

    def __init__(self, message: str, code: int = 0, previous: Optional[BaseException] = None):
        self.message = message
        self.code = code
        self.previous = previous
        super().__init__(message)

    def __repr__(self) -> str:
        return f'SandboxError({self.message!r}, code={self.code})'
