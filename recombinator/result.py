"""
Result Values
=============

Soft failures (parse errors of included files, sandbox rejections, values
that cannot be turned back into literals) are returned, not raised.

    >>> res = parse(code)
    >>> if res.is_ok():
    ...     nodes = res.unwrap()

``Option`` is spelled the Python way: ``Optional[T]`` with ``None`` as the
empty case.
"""

from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar, Union

T = TypeVar('T')
E = TypeVar('E')

Option = Optional


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: Any) -> T:
        return self.value

    def map(self, fn: Callable[[T], Any]) -> 'Ok':
        return Ok(fn(self.value))

    def ok(self) -> Optional[T]:
        return self.value


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self):
        if isinstance(self.error, BaseException):
            raise self.error
        raise ValueError(f'unwrap() on Err: {self.error!r}')

    def unwrap_or(self, default: Any) -> Any:
        return default

    def map(self, fn: Callable) -> 'Err':
        return self

    def ok(self) -> None:
        return None


Result = Union[Ok, Err]
