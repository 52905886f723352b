"""
Result type returned by every lobby operation.

Services never raise for rejected intents (wrong phase, not your turn, lobby
full...). They return Result.fail with a code from services.error_codes, and
the transport turns that into an `error{message, code}` reply to the caller.

Usage:
    return Result.ok(lobby)
    return Result.ok()
    return Result.fail("Lobby is full", code=error_codes.LOBBY_FULL)

    if not result:
        await reply(sid, "error", result.to_error_payload())
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a service call.

    Attributes:
        success: Whether the intent was applied
        value: Payload on success (None for void operations)
        error: Human-readable reason on failure
        error_code: Stable machine-readable code on failure
    """

    success: bool
    value: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> "Result[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str, code: str | None = None) -> "Result[T]":
        return cls(success=False, error=error, error_code=code)

    def __bool__(self) -> bool:
        return self.success

    def unwrap(self) -> T:
        """
        Get the value, raising ValueError if the result is a failure.
        """
        if not self.success:
            raise ValueError(f"Cannot unwrap failed result: {self.error}")
        return self.value  # type: ignore

    def to_error_payload(self) -> dict:
        """Error payload sent back to the caller on failure."""
        return {"message": self.error, "code": self.error_code}
