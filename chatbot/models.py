"""Pydantic data models shared across the application."""

import datetime as _dt
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel


class ChatMessage(BaseModel):
    id: Optional[str] = None
    text: str
    sender: Literal["user", "bot"]
    timestamp: Optional[_dt.datetime] = None


class TrainingPair(BaseModel):
    key: str  # normalized question, also the Firestore document id
    question: str
    answer: str
    timestamp: Optional[_dt.datetime] = None


class Session(BaseModel):
    identity: Optional[str] = None
    ready: bool = False


class Turn(BaseModel):
    """One role-tagged unit of text sent to the model."""

    role: Literal["user", "model"]
    text: str


class PipelineState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    TEACHING = "teaching"
    CLEARING = "clearing"
    INFERRING = "inferring"


class SubmitOutcome(str, Enum):
    TEACH_HANDLED = "teach_handled"
    TEACH_REJECTED = "teach_rejected"
    CLEAR_HANDLED = "clear_handled"
    INFERENCE_SUCCEEDED = "inference_succeeded"
    INFERENCE_FAILED = "inference_failed"
    ERRORED = "errored"


class SubmitRequest(BaseModel):
    text: str


class SubmitResponse(BaseModel):
    status: str  # a SubmitOutcome value, or "ignored"
