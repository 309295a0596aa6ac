"""Tagged result type and the engine's error taxonomy.

Every fallible engine operation returns either ``Success(value)`` or
``Failure(error)`` where ``error`` is an :class:`EngineError` carrying an
explicit :class:`ErrorKind`.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Error categories surfaced by the engine."""

    NOT_CONNECTED = "not_connected"  # Local precondition, no platform call made
    PLATFORM_ERROR = "platform_error"  # Reported by the purchase platform
    LEDGER_ERROR = "ledger_error"  # Reported by (or failed to reach) the ledger
    NO_OFFER_AVAILABLE = "no_offer_available"
    CACHE_DESERIALIZATION_ERROR = "cache_deserialization_error"
    CACHE_WRITE_ERROR = "cache_write_error"
    NO_CONNECTIVITY_NO_CACHE = "no_connectivity_no_cache"


class EngineError(Exception):
    """Error value carried by a :class:`Failure`.

    It is also an exception so ``Result.unwrap()`` can raise it directly.
    """

    def __init__(self, kind: ErrorKind, message: str, response_code: Optional[Any] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.response_code = response_code

    @classmethod
    def not_connected(cls) -> "EngineError":
        return cls(ErrorKind.NOT_CONNECTED, "Billing client not connected")

    @classmethod
    def platform_error(cls, response_code: Any, message: str) -> "EngineError":
        return cls(ErrorKind.PLATFORM_ERROR, message, response_code=response_code)

    @classmethod
    def ledger_error(cls, message: str) -> "EngineError":
        return cls(ErrorKind.LEDGER_ERROR, message)

    @classmethod
    def no_offer_available(cls, product_id: str) -> "EngineError":
        return cls(ErrorKind.NO_OFFER_AVAILABLE, f"No offer available for product: {product_id}")

    @classmethod
    def cache_deserialization(cls, key: str, detail: str) -> "EngineError":
        return cls(
            ErrorKind.CACHE_DESERIALIZATION_ERROR,
            f"Failed to deserialize cached data for '{key}': {detail}",
        )

    @classmethod
    def cache_write(cls, key: str, detail: str) -> "EngineError":
        return cls(ErrorKind.CACHE_WRITE_ERROR, f"Failed to save cache for '{key}': {detail}")

    @classmethod
    def no_connectivity_no_cache(cls, key: str) -> "EngineError":
        return cls(
            ErrorKind.NO_CONNECTIVITY_NO_CACHE,
            f"No cached data available for '{key}' and the request could not be completed",
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EngineError):
            return NotImplemented
        return (self.kind, self.message, self.response_code) == (
            other.kind,
            other.message,
            other.response_code,
        )

    def __hash__(self) -> int:
        return hash((self.kind, self.message))

    def __repr__(self) -> str:
        return f"EngineError(kind={self.kind.name}, message={self.message!r})"


@dataclass(frozen=True)
class Success(Generic[T]):
    """Successful outcome holding ``value``."""

    value: T

    @property
    def is_success(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value

    def value_or(self, default: Any) -> T:
        return self.value


@dataclass(frozen=True)
class Failure:
    """Failed outcome holding an :class:`EngineError`."""

    error: EngineError

    @property
    def is_success(self) -> bool:
        return False

    def unwrap(self) -> Any:
        raise self.error

    def value_or(self, default: Any) -> Any:
        return default


Result = Union[Success[T], Failure]
