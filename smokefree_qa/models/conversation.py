"""Conversation and retrieval result data models."""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field

from smokefree_qa.models.chunk import Chunk


class Role(str, Enum):
    """Author of a conversation message."""

    USER = "user"
    MODEL = "model"


class Message(BaseModel):
    """A single turn in the active chat session."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)


class RetrievalResult(BaseModel):
    """A selected chunk with the score it received in one selection pass."""

    chunk: Chunk
    relevance_score: float
