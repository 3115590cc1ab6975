"""
Explicit result values returned at collaborator boundaries.

``Ok`` wraps a successful value, ``Err`` wraps a :class:`BookingError`.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from utils.exceptions import BookingError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result."""

    value: T

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """Failed result."""

    error: BookingError

    @property
    def is_ok(self) -> bool:
        return False

    def unwrap(self):
        raise ValueError(f"Called unwrap on Err: {self.error.kind.value}: {self.error.message}")


Result = Union[Ok[T], Err]


def ok(value: T) -> Ok[T]:
    """Shortcut for building an ``Ok``."""
    return Ok(value)


def err(error: BookingError) -> Err:
    """Shortcut for building an ``Err``."""
    return Err(error)
