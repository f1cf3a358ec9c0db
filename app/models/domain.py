from typing import List
from uuid import UUID, uuid4

from sqlmodel import Column, DateTime, Field, Relationship, SQLModel, UniqueConstraint
from datetime import datetime, UTC


class Conversation(SQLModel, table=True):
    """Conversation model. Membership lives in ConversationParticipant rows."""

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)

    # Diagnostic only, never part of the pair invariant
    created_by: UUID | None = Field(default=None, index=True)

    participants: List["ConversationParticipant"] = Relationship(
        back_populates="conversation"
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    # Advanced by the messaging layer when a message is appended
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class ConversationParticipant(SQLModel, table=True):
    """A user's membership in a conversation."""

    __tablename__ = "conversation_participant"
    __table_args__ = (
        UniqueConstraint(
            "conversation_id", "user_id", name="unique_conversation_participant"
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    conversation_id: UUID = Field(foreign_key="conversation.id", index=True)
    # Issued by the identity provider, which owns the user table
    user_id: UUID = Field(index=True)

    conversation: Conversation = Relationship(back_populates="participants")

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
