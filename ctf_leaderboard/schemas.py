"""
Input validation schemas using Pydantic v2
Validates every admin mutation before anything touches the store
"""

import logging
from typing import Any, List, Literal, Type, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError, describe_validation_error
from .models import INTERACTIVE

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def _required_text(value: str, message: str) -> str:
    value = value.strip()
    if len(value) == 0:
        raise ValueError(message)
    return value


class TeamInput(BaseModel):
    """Team create/rename payload"""

    name: str = Field(..., max_length=255)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _required_text(v, "Team name is required")


class CheckpointInput(BaseModel):
    """One checkpoint of an interactive challenge"""

    name: str = Field(..., max_length=255)
    points: int

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _required_text(v, "Checkpoint name is required")

    @field_validator("points")
    @classmethod
    def validate_points(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Checkpoint points must be positive")
        return v


class ChallengeInput(BaseModel):
    """Challenge create/update payload"""

    name: str = Field(..., max_length=255)
    description: str = ""
    type: Literal["non-interactive", "interactive"]
    points: int = 0
    penalty_points: int = 0
    checkpoints: List[CheckpointInput] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _required_text(v, "Challenge name is required")

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("points", mode="before")
    @classmethod
    def default_points(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("penalty_points", mode="before")
    @classmethod
    def default_penalty(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("penalty_points")
    @classmethod
    def validate_penalty(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Penalty points must be non-negative")
        return v

    @field_validator("checkpoints", mode="before")
    @classmethod
    def default_checkpoints(cls, v: Any) -> Any:
        return [] if v is None else v

    @model_validator(mode="after")
    def normalize_for_type(self) -> "ChallengeInput":
        """Interactive challenges are worth their checkpoints and carry no penalty"""
        if self.type == INTERACTIVE:
            if not self.checkpoints:
                raise ValueError("Interactive challenges require at least one checkpoint")
            self.points = sum(checkpoint.points for checkpoint in self.checkpoints)
            self.penalty_points = 0
        elif self.checkpoints:
            raise ValueError("Non-interactive challenges cannot have checkpoints")
        elif self.points <= 0:
            raise ValueError("Points must be positive")
        return self


class SubmissionInput(BaseModel):
    """A single answer attempt"""

    team_id: str = Field(..., max_length=64)
    challenge_id: str = Field(..., max_length=64)
    is_correct: bool
    submission_text: str = Field("", max_length=10000)

    @field_validator("team_id")
    @classmethod
    def validate_team_id(cls, v: str) -> str:
        return _required_text(v, "Team ID is required")

    @field_validator("challenge_id")
    @classmethod
    def validate_challenge_id(cls, v: str) -> str:
        return _required_text(v, "Challenge ID is required")


class CheckpointSelection(BaseModel):
    """The full set of checkpoints a team has solved on one challenge"""

    team_id: str = Field(..., max_length=64)
    challenge_id: str = Field(..., max_length=64)
    checkpoint_ids: List[str] = Field(default_factory=list)

    @field_validator("checkpoint_ids", mode="before")
    @classmethod
    def default_checkpoint_ids(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("team_id")
    @classmethod
    def validate_team_id(cls, v: str) -> str:
        return _required_text(v, "Team ID is required")

    @field_validator("challenge_id")
    @classmethod
    def validate_challenge_id(cls, v: str) -> str:
        return _required_text(v, "Challenge ID is required")

    @field_validator("checkpoint_ids")
    @classmethod
    def dedupe_checkpoint_ids(cls, v: List[str]) -> List[str]:
        seen: List[str] = []
        for checkpoint_id in v:
            checkpoint_id = checkpoint_id.strip()
            if not checkpoint_id:
                raise ValueError("Checkpoint IDs cannot be empty")
            if checkpoint_id not in seen:
                seen.append(checkpoint_id)
        return seen


def validate_input(schema: Type[SchemaT], **data: Any) -> SchemaT:
    """
    Validate mutation input against ``schema``

    Returns:
        The validated model

    Raises:
        ValidationError: with the first human-readable message
    """
    try:
        return schema(**data)
    except PydanticValidationError as e:
        message = describe_validation_error(e)
        logger.debug(f"{schema.__name__} rejected: {message}")
        raise ValidationError(message) from e


__all__ = [
    "TeamInput",
    "CheckpointInput",
    "ChallengeInput",
    "SubmissionInput",
    "CheckpointSelection",
    "validate_input",
]
