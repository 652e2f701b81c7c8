"""
Optional value types
Explicit present/unknown wrappers for values that external data may omit
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Present(Generic[T]):
    """A value that is known"""
    value: T


@dataclass(frozen=True)
class Unknown:
    """A value that is missing or could not be interpreted"""
    reason: str = ""


Maybe = Union[Present[T], Unknown]
