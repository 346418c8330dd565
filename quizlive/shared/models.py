"""
MODULE OVERVIEW:
This module defines the strictly typed data structures shared by every part of the
quiz client, powered by Pydantic v2.

WHAT IS HAPPENING HERE:
Two families of models live here. The domain records (QuestionView, AnswerAttempt,
ScoreboardEntry...) are what the state machine holds and the dashboard reads.
The `*Payload` models describe what the server pushes over the wire; every inbound
event is validated against one of them before it may touch state, which is how
a malformed payload gets rejected instead of desynchronizing the match.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"

class MatchState(str, Enum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"

class ErrorKind(str, Enum):
    SESSION_NOT_FOUND = "session not found"
    GAME_ALREADY_STARTED = "game already started"
    ALREADY_ANSWERED = "already answered"
    OTHER = "other"

    @classmethod
    def classify(cls, message: str) -> "ErrorKind":
        """The server only sends free text; we match on the known phrases."""
        lowered = (message or "").lower()
        for kind in (cls.SESSION_NOT_FOUND, cls.GAME_ALREADY_STARTED, cls.ALREADY_ANSWERED):
            if kind.value in lowered:
                return kind
        return cls.OTHER

# ==========================
# DOMAIN RECORDS
# ==========================
class SessionIdentity(BaseModel):
    session_code: str
    participant_name: str

    @field_validator("session_code", "participant_name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

class QuestionView(BaseModel):
    model_config = ConfigDict(frozen=True)

    ordinal: int
    total_count: int
    prompt: str
    options: list[str] = Field(min_length=1)
    time_limit_seconds: int
    media_ref: Optional[str] = None
    already_answered: bool = False
    kind: Optional[str] = None

class AnswerAttempt(BaseModel):
    selected_index: int
    submitted_for_ordinal: int

class ScoreboardEntry(BaseModel):
    participant_name: str
    score: int

class PendingResult(BaseModel):
    points_earned: int = 0
    # Withheld until `question_results` arrives
    is_correct: Optional[bool] = None

class QuizSummary(BaseModel):
    name: str
    title: str = ""
    description: str = ""
    question_count: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

# ==========================
# INBOUND PAYLOADS
# ==========================
class LeaderboardRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    score: int

    def to_entry(self) -> ScoreboardEntry:
        return ScoreboardEntry(participant_name=self.name, score=self.score)

def ranked(rows: list[LeaderboardRow]) -> list[ScoreboardEntry]:
    # sorted() is stable, so the server's own tie order survives
    return sorted((row.to_entry() for row in rows), key=lambda e: e.score, reverse=True)

def _default_if_null(model: type[BaseModel], value, info: ValidationInfo):
    # Servers send an explicit null for optional fields they have no value for
    if value is None:
        return model.model_fields[info.field_name].default
    return value

class JoinedSessionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    reconnected: bool = False
    game_state: Optional[MatchState] = None
    total_score: int = 0

    @field_validator("reconnected", "total_score", mode="before")
    @classmethod
    def _null_as_default(cls, value, info: ValidationInfo):
        return _default_if_null(cls, value, info)

class ErrorPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str

    @property
    def kind(self) -> ErrorKind:
        return ErrorKind.classify(self.message)

class NewQuestionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    question_number: int
    total_questions: int
    question: str
    answers: list[str] = Field(min_length=1)
    time_limit: int
    already_answered: bool = False
    type: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("already_answered", mode="before")
    @classmethod
    def _null_as_default(cls, value, info: ValidationInfo):
        return _default_if_null(cls, value, info)

    def to_view(self) -> QuestionView:
        return QuestionView(
            ordinal=self.question_number,
            total_count=self.total_questions,
            prompt=self.question,
            options=list(self.answers),
            time_limit_seconds=self.time_limit,
            media_ref=self.image_url,
            already_answered=self.already_answered,
            kind=self.type,
        )

class TimerUpdatePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    remaining: int

class AnswerSubmittedPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    points_earned: int

class QuestionResultsPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    correct_answer: int
    leaderboard: list[LeaderboardRow] = []

class GameOverPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    leaderboard: list[LeaderboardRow] = []

class SessionCreatedPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    session_id: Optional[str] = None

class PlayerJoinedPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    player_name: str
