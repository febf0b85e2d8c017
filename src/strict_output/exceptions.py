from __future__ import annotations

from collections.abc import Sequence


class StrictOutputError(Exception):
    """Base exception for all strict-output errors."""


class RecoverableOutputError(StrictOutputError):
    """Raised when one attempt produced unusable output. Triggers a fresh attempt."""

    def __init__(self, message: str, raw: str | None = None) -> None:
        self.raw = raw
        super().__init__(message)


class MalformedResponseError(RecoverableOutputError):
    """Raised when the model response is not well-formed JSON."""


class ShapeViolationError(RecoverableOutputError):
    """Raised when a parsed item does not conform to the output shape."""

    def __init__(self, message: str, raw: str | None = None, key: str | None = None) -> None:
        self.key = key
        super().__init__(message, raw=raw)


class UnmatchedChoiceError(RecoverableOutputError):
    """Raised in strict mode when an enumerated field holds a value outside its choices."""

    def __init__(
        self,
        key: str,
        value: object,
        choices: Sequence[str],
        raw: str | None = None,
    ) -> None:
        self.key = key
        self.value = value
        self.choices = list(choices)
        super().__init__(
            f"Value {value!r} for '{key}' is not one of {self.choices}",
            raw=raw,
        )


class RetryExhaustedError(StrictOutputError):
    """Raised when all attempts are exhausted and the caller asked for an error."""

    def __init__(self, attempts: int, last_error: Exception | None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        if last_error is None:
            detail = "no attempt was made"
        else:
            detail = f"Last error: {type(last_error).__name__}: {last_error}"
        super().__init__(f"All {attempts} attempts exhausted. {detail}")
