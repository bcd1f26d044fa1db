"""Completion results passed to purchase flow handlers."""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    """Operation completed with a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """Operation completed with an error."""

    error: Exception

    @property
    def ok(self) -> bool:
        return False


Result = Union[Success[T], Failure]
