from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from app.core.errors import MarketplaceError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either ``data`` or ``error`` is set, never both."""

    data: Optional[T] = None
    error: Optional[MarketplaceError] = None

    @classmethod
    def success(cls, data: T) -> "Result[T]":
        return cls(data=data)

    @classmethod
    def failure(cls, error: MarketplaceError) -> "Result[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.data
