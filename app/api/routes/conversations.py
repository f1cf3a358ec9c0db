from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from loguru import logger
from sqlmodel import Session

from app.api.dependencies import get_current_user_id, get_direct_conversation_service
from app.core.error_classifier import PermissionDeniedError, ResolutionError
from app.db.session import get_db
from app.models.schemas.requests.conversation import ResolveConversationRequest
from app.models.schemas.responses.conversation import (
    ConversationResponse,
    ParticipantResponse,
    ResolveConversationResponse,
)
from app.repositories.conversation_repository import ConversationRepository
from app.services.conversation_resolver import InvalidConversationPairError
from app.services.direct_conversation_service import DirectConversationService
from app.utils.errors import (
    CONVERSATION_NOT_FOUND,
    ResolutionFailedError,
    ValidationError,
)

router = APIRouter(prefix="/api/dm", tags=["direct_messages"])


@router.post("/conversations", response_model=ResolveConversationResponse)
async def resolve_conversation(
    conversation_data: ResolveConversationRequest,
    current_user_id: Annotated[UUID, Depends(get_current_user_id)],
    service: Annotated[
        DirectConversationService, Depends(get_direct_conversation_service)
    ],
) -> ResolveConversationResponse:
    """Get or create the DM conversation with another user"""
    try:
        conversation_id = await service.resolve_direct_conversation(
            current_user_id, conversation_data.user_id
        )
    except InvalidConversationPairError as e:
        raise ValidationError(str(e))
    except ResolutionError as e:
        logger.error(f"Resolving conversation with {conversation_data.user_id} failed: {e!r}")
        raise ResolutionFailedError(e)
    return ResolveConversationResponse(conversation_id=conversation_id)


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: UUID,
    current_user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[Session, Depends(get_db)],
) -> ConversationResponse:
    """Get a DM conversation and its participants.

    Conversations the caller is not in are reported as missing, matching the
    row-level read rule.
    """
    repository = ConversationRepository(db)
    conversation = repository.get(conversation_id)
    if not conversation:
        raise CONVERSATION_NOT_FOUND(conversation_id)

    try:
        participants = repository.get_participants(current_user_id, conversation_id)
    except PermissionDeniedError:
        raise CONVERSATION_NOT_FOUND(conversation_id)

    return ConversationResponse(
        id=conversation.id,
        created_by=conversation.created_by,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
        participants=[ParticipantResponse.model_validate(p) for p in participants],
    )
