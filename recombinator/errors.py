"""
Error Taxonomy
==============

Exceptions raised by the optimizer.

Only two conditions are fatal for a run: an entry file that cannot be read,
and an entry file that cannot be parsed at all. Everything else (unresolved
includes, unparseable included files, sandbox rejections, shape mismatches in
a pass) degrades to "leave the code as it is" and travels through the
pipeline as a value (see :mod:`recombinator.result`).
"""

from typing import Optional


class RecombinatorError(Exception):
    """Base class for all optimizer errors."""


class ParseError(RecombinatorError):
    """Source text could not be parsed."""

    def __init__(self, message: str, line: Optional[int] = None,
                 column: Optional[int] = None, path: Optional[str] = None):
        self.message = message
        self.line = line
        self.column = column
        self.path = path
        super().__init__(self.describe())

    def describe(self) -> str:
        where = self.path or '<source>'
        if self.line is not None:
            where += f':{self.line}'
            if self.column is not None:
                where += f':{self.column}'
        return f'{where}: {self.message}'


class IncludeError(RecombinatorError):
    """The entry file could not be read."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f'cannot read {path}: {reason}')


class TraversalError(RecombinatorError):
    """A visitor broke the traversal protocol (a bug in a pass)."""


class ConfigError(RecombinatorError):
    """Invalid optimizer configuration."""
