from datetime import datetime
from uuid import UUID

from app.core.schema import BaseResponse


class ResolveConversationResponse(BaseResponse):
    """Response model for a resolved direct conversation."""

    conversation_id: UUID


class ParticipantResponse(BaseResponse):
    user_id: UUID
    created_at: datetime


class ConversationResponse(BaseResponse):
    """Response model for a conversation and its participants."""

    id: UUID
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime
    participants: list[ParticipantResponse] = []
