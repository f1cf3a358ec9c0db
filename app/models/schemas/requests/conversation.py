from uuid import UUID

from pydantic import BaseModel


class ResolveConversationRequest(BaseModel):
    """Request to open the direct conversation with another user."""

    user_id: UUID
