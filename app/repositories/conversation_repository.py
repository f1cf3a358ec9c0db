from typing import Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from app.models.domain import Conversation, ConversationParticipant
from app.repositories.base_repository import BaseRepository
from app.services.membership_service import (
    MembershipPolicy,
    conversation_ids_for_user,
)


class ConversationRepository(BaseRepository[Conversation]):
    """Conversation and participant access on behalf of an acting user."""

    def __init__(self, db: Session):
        super().__init__(Conversation, db)
        self.policy = MembershipPolicy(db)

    def list_visible_participants(
        self, actor_id: UUID, user_ids: Sequence[UUID]
    ) -> list[ConversationParticipant]:
        """Participant rows for the given users, limited to the actor's conversations."""
        query = (
            select(ConversationParticipant)
            .where(col(ConversationParticipant.user_id).in_(list(user_ids)))
            .where(
                col(ConversationParticipant.conversation_id).in_(
                    conversation_ids_for_user(actor_id)
                )
            )
            .order_by(col(ConversationParticipant.created_at))
        )
        return list(self.db.exec(query).all())

    def create_conversation(self, created_by: UUID) -> Conversation:
        """Insert an empty conversation. Participants are added separately."""
        return self.create(Conversation(created_by=created_by))

    def add_participant(
        self, actor_id: UUID, conversation_id: UUID, user_id: UUID
    ) -> ConversationParticipant:
        """Insert a participant row, subject to the membership policy.

        Raises:
            PermissionDeniedError: actor may not add user_id to this conversation
            IntegrityError: the (conversation_id, user_id) pair already exists
        """
        self.policy.check_can_add_participant(actor_id, conversation_id, user_id)
        participant = ConversationParticipant(
            conversation_id=conversation_id, user_id=user_id
        )
        try:
            return self.create(participant)
        except IntegrityError:
            self.db.rollback()
            raise

    def get_participants(
        self, actor_id: UUID, conversation_id: UUID
    ) -> list[ConversationParticipant]:
        """All participants of a conversation the actor belongs to."""
        self.policy.check_can_read(actor_id, conversation_id)
        query = (
            select(ConversationParticipant)
            .where(ConversationParticipant.conversation_id == conversation_id)
            .order_by(col(ConversationParticipant.created_at))
        )
        return list(self.db.exec(query).all())
