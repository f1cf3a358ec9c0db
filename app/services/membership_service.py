"""Conversation membership predicate and the access policy built on it.

Every membership question goes through ``membership_query``: one direct
query against ``conversation_participant`` that never consults the policy
it backs. The point check (``is_conversation_participant``) and the row
filter for reads (``conversation_ids_for_user``) are both built on it, so
neither policy path can recurse into itself.
"""

from uuid import UUID

from sqlmodel import Session, select

from app.core.error_classifier import PermissionDeniedError
from app.models.domain import ConversationParticipant


def membership_query(user_id: UUID):
    """Select the ids of the conversations user_id participates in."""
    return select(ConversationParticipant.conversation_id).where(
        ConversationParticipant.user_id == user_id
    )


def is_conversation_participant(
    db: Session, conversation_id: UUID, user_id: UUID
) -> bool:
    """Return True when user_id is a participant of conversation_id."""
    query = (
        membership_query(user_id)
        .where(ConversationParticipant.conversation_id == conversation_id)
        .limit(1)
    )
    return db.exec(query).first() is not None


def conversation_ids_for_user(user_id: UUID):
    """Subquery of the conversations a user belongs to, for row filtering."""
    return membership_query(user_id)


class MembershipPolicy:
    """Row-level rules for conversation tables, applied on behalf of an actor.

    - participant rows are readable only for conversations the actor is in
    - an actor may add themselves to any conversation
    - an actor may add someone else only to a conversation they already belong to
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def check_can_read(self, actor_id: UUID, conversation_id: UUID) -> None:
        if not is_conversation_participant(self.db, conversation_id, actor_id):
            raise PermissionDeniedError(
                f"permission denied for conversation {conversation_id}"
            )

    def check_can_add_participant(
        self, actor_id: UUID, conversation_id: UUID, user_id: UUID
    ) -> None:
        if user_id == actor_id:
            return
        if not is_conversation_participant(self.db, conversation_id, actor_id):
            raise PermissionDeniedError(
                "new row violates row-level security policy for table "
                f"conversation_participant: {actor_id} is not a participant of "
                f"{conversation_id}"
            )
