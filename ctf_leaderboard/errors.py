"""
Error taxonomy and mutation results for the CTF leaderboard.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError


class ScoreboardError(Exception):
    """Base class for errors surfaced to the admin/presentation layer."""

    kind = "error"


class ValidationError(ScoreboardError):
    """Malformed or out-of-range input."""

    kind = "validation"


class NotFoundError(ScoreboardError):
    """A referenced team, challenge or checkpoint does not exist."""

    kind = "not_found"


class ConflictError(ScoreboardError):
    """The operation would violate a uniqueness or state invariant."""

    kind = "conflict"


class StoreError(ScoreboardError):
    """The underlying persistence layer failed."""

    kind = "store"


class AuthorizationError(ScoreboardError):
    """Caller does not hold the admin credential."""

    kind = "unauthorized"


def describe_validation_error(exc: PydanticValidationError) -> str:
    """
    Reduce a pydantic validation error to its first human-readable message.

    @param exc: Error raised by a schema model
    @return: Message suitable for showing to the admin
    """
    error = exc.errors()[0]
    message = error["msg"]

    if message.startswith("Value error, "):
        return message[len("Value error, "):]

    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {message}" if location else message


@dataclass
class MutationResult:
    """Outcome of an admin mutation."""

    success: bool
    error: Optional[str] = None
    error_kind: Optional[str] = None
    entity: Optional[Any] = None

    @classmethod
    def ok(cls, entity: Optional[Any] = None) -> "MutationResult":
        return cls(success=True, entity=entity)

    @classmethod
    def failure(cls, error: str, kind: str = "error") -> "MutationResult":
        return cls(success=False, error=error, error_kind=kind)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}

        if self.error is not None:
            data["error"] = self.error
        if self.error_kind is not None:
            data["error_kind"] = self.error_kind
        if self.entity is not None and hasattr(self.entity, "to_dict"):
            data["entity"] = self.entity.to_dict()
        return data
