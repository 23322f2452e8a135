"""
models.py
Data Transfer Objects for the BuzzRoom event channel.
Uses Pydantic V2. Every model serializes with camelCase keys to match the
event names and field names the browser clients already speak.
"""
import time
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Wall clock in epoch milliseconds, the unit every wire timestamp uses."""
    return int(time.time() * 1000)


DisplayName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]


# --- Enums for strict type safety ---

class Role(str, Enum):
    HOST = "host"
    PARTICIPANT = "participant"


class QuizMode(str, Enum):
    BUZZER = "buzzer"
    BASIC = "basic"
    SCHEDULED = "scheduled"


class WireModel(BaseModel):
    """Base for everything that crosses the socket."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# --- Shared Models ---

class Question(WireModel):
    """Multiple-choice question with exactly four options. Immutable once dealt."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    text: str
    options: Tuple[str, ...]
    correct_index: int = Field(
        ge=0,
        le=3,
        validation_alias=AliasChoices("correctIndex", "correct", "correct_index"),
        serialization_alias="correctIndex",
    )

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Question text must not be empty.")
        return value

    @field_validator("options")
    @classmethod
    def _four_options(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if len(value) != 4:
            raise ValueError("Each question must have exactly four options.")
        cleaned = [option.strip() for option in value]
        if any(not option for option in cleaned):
            raise ValueError("Option text cannot be empty.")
        return tuple(cleaned)


class QuizSettings(WireModel):
    mode: QuizMode = QuizMode.BUZZER
    time_limit: Optional[int] = Field(default=None, gt=0)
    allow_retakes: bool = False
    show_correct_answers: bool = True
    passing_score: Optional[int] = Field(default=None, ge=0)


class ParticipantAnswer(WireModel):
    question_index: int
    selected_option: int
    timestamp: Optional[int] = None


# --- Inbound payloads (client -> coordinator) ---

class ClientFrame(BaseModel):
    """Envelope of every inbound frame: {"type": ..., "payload": {...}}."""
    type: str = Field(min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)


class EmptyPayload(WireModel):
    pass


class RegisterTeamPayload(WireModel):
    team_name: DisplayName


class QuestionChangePayload(WireModel):
    question_number: int


class BuzzPayload(WireModel):
    team_name: Optional[DisplayName] = None
    timestamp: Optional[Union[int, float]] = None


class CelebrationPayload(WireModel):
    team_name: DisplayName
    points: int = 1


class CustomQuestionsPayload(WireModel):
    questions: List[Question] = Field(min_length=1)


class AnswerRevealedPayload(WireModel):
    revealed_answer: int = Field(ge=0, le=3)


class CreatePollPayload(WireModel):
    question: str
    options: List[str] = Field(min_length=2, max_length=6)

    @field_validator("question")
    @classmethod
    def _question_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Poll question must not be empty.")
        return value

    @field_validator("options")
    @classmethod
    def _options_not_blank(cls, value: List[str]) -> List[str]:
        cleaned = [option.strip() for option in value]
        if any(not option for option in cleaned):
            raise ValueError("Poll options cannot be empty.")
        return cleaned


class CastVotePayload(WireModel):
    option_index: int
    poll_id: Optional[str] = None


class PollRefPayload(WireModel):
    poll_id: Optional[str] = None


class QuizModePayload(WireModel):
    mode: QuizMode
    settings: Dict[str, Any] = Field(default_factory=dict)


class SettingsUpdatePayload(WireModel):
    settings: Dict[str, Any]


class SubmissionPayload(WireModel):
    participant_name: DisplayName
    answers: List[ParticipantAnswer] = Field(default_factory=list)


class RevealQuestionPayload(WireModel):
    question_index: int


class LeaderboardVisibilityPayload(WireModel):
    visible: bool


class AnnouncementPayload(WireModel):
    message: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=500)]


# --- Outbound payloads (coordinator -> clients) ---

class BuzzEvent(WireModel):
    team_name: str
    timestamp: Optional[Union[int, float]]
    rank: int
    socket_id: str
    total_responses: int


class PollView(WireModel):
    """The poll object as broadcast; carries the participant visibility flag."""
    id: str
    question: str
    options: List[str]
    votes: Dict[str, int]
    is_active: bool
    show_results: bool
    created_at: int
    closed_at: Optional[int] = None


class PollResults(WireModel):
    poll_id: str
    question: str
    options: List[str]
    vote_counts: List[int]
    total_votes: int
    voter_names: List[List[str]]


class Submission(WireModel):
    participant_name: str
    socket_id: str
    answers: List[ParticipantAnswer]
    submission_time: int
    score: int = 0
    is_complete: bool = True


class RevealState(WireModel):
    question_index: int
    is_revealed: bool = False
    revealed_at: Optional[int] = None


class LeaderboardEntry(WireModel):
    rank: int
    participant_name: str
    score: int
    submission_time: int
    questions_revealed: int


class SessionSummary(WireModel):
    """Lightweight session info for the directory."""
    id: str
    connection_count: int
    team_count: int
    question_number: int
    total_questions: int
    mode: QuizMode
    poll_active: bool
