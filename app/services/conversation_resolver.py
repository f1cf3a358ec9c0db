"""Find-or-create of the single direct conversation between two users.

Lookup and creation are separate, policy-compatible steps rather than one
conditional insert: a caller can only see participant rows of conversations
it belongs to, and can only add the counterpart after adding itself.
"""

from collections import defaultdict
from datetime import datetime
from typing import Awaitable, Iterable, TypeVar
from uuid import UUID

from loguru import logger

from app.core.deadline import with_deadline
from app.core.error_classifier import ErrorKind, ResolutionError, classify
from app.services.conversation_store import ConversationStore, ParticipantRecord

T = TypeVar("T")


class InvalidConversationPairError(ValueError):
    """The two user ids cannot form a direct conversation."""


def find_direct_conversation(
    rows: Iterable[ParticipantRecord], user_a: UUID, user_b: UUID
) -> UUID | None:
    """Pick the conversation whose participant set is exactly {user_a, user_b}.

    Conversations with any other participant set, including orphans left with
    a single participant, never match. If a cross-process race produced more
    than one match, the conversation with the oldest participant row wins so
    every caller converges on the same id.
    """
    members: dict[UUID, set[UUID]] = defaultdict(set)
    joined: dict[UUID, list[datetime]] = defaultdict(list)
    for row in rows:
        members[row.conversation_id].add(row.user_id)
        if row.created_at is not None:
            joined[row.conversation_id].append(row.created_at)

    wanted = {user_a, user_b}
    matches = [cid for cid, users in members.items() if users == wanted]
    if not matches:
        return None
    if len(matches) > 1:
        logger.warning(
            f"Found {len(matches)} direct conversations between {user_a} and {user_b}: {matches}"
        )

        def age(cid: UUID) -> tuple:
            if joined[cid]:
                return (0, min(joined[cid]), str(cid))
            return (1, str(cid))

        matches.sort(key=age)
    return matches[0]


class ConversationResolver:
    """Resolves the direct conversation between two users, creating it on a miss."""

    def __init__(self, store: ConversationStore, step_timeout_seconds: float = 10.0):
        self.store = store
        self.step_timeout_seconds = step_timeout_seconds

    async def resolve(self, current_user_id: UUID, other_user_id: UUID) -> UUID:
        """Return the id of the direct conversation between the two users.

        Args:
            current_user_id: The acting user; creation runs with their permissions
            other_user_id: The counterpart

        Raises:
            InvalidConversationPairError: both ids are the same user
            ResolutionError: auth, transient or unknown failure; conflicts are
                absorbed and never raised
        """
        if not isinstance(current_user_id, UUID) or not isinstance(other_user_id, UUID):
            raise InvalidConversationPairError("User ids must be UUIDs")
        if current_user_id == other_user_id:
            raise InvalidConversationPairError(
                "Cannot start a direct conversation with yourself"
            )

        logger.info(
            f"Finding or creating direct conversation between {current_user_id} and {other_user_id}"
        )
        existing = await self._find_existing(current_user_id, other_user_id)
        if existing is not None:
            logger.info(f"Found existing direct conversation {existing}")
            return existing

        logger.info("No existing direct conversation found, creating new one")
        return await self._create(current_user_id, other_user_id)

    async def _guarded(self, operation: Awaitable[T], label: str) -> T:
        try:
            return await with_deadline(operation, self.step_timeout_seconds, label)
        except Exception as e:
            error = classify(e)
            if error is not e:
                raise error from e
            raise

    async def _find_existing(self, current_user_id: UUID, other_user_id: UUID) -> UUID | None:
        try:
            rows = await self._guarded(
                self.store.find_participants(
                    current_user_id, [current_user_id, other_user_id]
                ),
                "Find existing conversation",
            )
        except ResolutionError as e:
            self._log_failure("finding existing conversation", e)
            raise
        return find_direct_conversation(rows, current_user_id, other_user_id)

    async def _create(self, current_user_id: UUID, other_user_id: UUID) -> UUID:
        try:
            conversation_id = await self._guarded(
                self.store.create_conversation(created_by=current_user_id),
                "Create conversation",
            )
        except ResolutionError as e:
            self._log_failure("creating conversation", e)
            raise
        logger.info(f"Created conversation {conversation_id}")

        # Self first: adding the counterpart requires being a participant already
        await self._add_participant(
            current_user_id, conversation_id, current_user_id, "Add self as participant"
        )
        await self._add_participant(
            current_user_id, conversation_id, other_user_id, "Add other user as participant"
        )

        logger.info(
            f"Created direct conversation {conversation_id} with both participants"
        )
        return conversation_id

    async def _add_participant(
        self, actor_id: UUID, conversation_id: UUID, user_id: UUID, label: str
    ) -> None:
        try:
            await self._guarded(
                self.store.add_participant(actor_id, conversation_id, user_id), label
            )
        except ResolutionError as e:
            if e.kind == ErrorKind.CONFLICT:
                logger.info(
                    f"Participant {user_id} already in conversation {conversation_id}, continuing"
                )
                return
            # The conversation row stays behind as an orphan that lookups never match
            self._log_failure(f"adding participant {user_id} to {conversation_id}", e)
            raise
        logger.debug(f"Added participant {user_id} to conversation {conversation_id}")

    def _log_failure(self, action: str, error: ResolutionError) -> None:
        logger.error(
            f"Error {action}: kind={error.kind.value} code={error.code} "
            f"message={error.message} details={error.details}"
        )
