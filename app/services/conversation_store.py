from datetime import datetime
from typing import Callable, Protocol, Sequence, TypeVar
from uuid import UUID

from anyio import to_thread
from pydantic import BaseModel
from sqlalchemy import Engine
from sqlmodel import Session

from app.repositories.conversation_repository import ConversationRepository

T = TypeVar("T")


class ParticipantRecord(BaseModel):
    """A participant row as returned by a store lookup."""

    conversation_id: UUID
    user_id: UUID
    created_at: datetime | None = None


class ConversationStore(Protocol):
    """Remote operations the resolver performs, each on behalf of actor_id."""

    async def find_participants(
        self, actor_id: UUID, user_ids: Sequence[UUID]
    ) -> list[ParticipantRecord]: ...

    async def create_conversation(self, created_by: UUID) -> UUID: ...

    async def add_participant(
        self, actor_id: UUID, conversation_id: UUID, user_id: UUID
    ) -> None: ...


class SqlConversationStore:
    """ConversationStore backed by the SQLModel repository.

    Each operation opens its own session and commits on its own, so a failure
    between steps leaves earlier steps in place. Blocking database work runs
    in a worker thread; on cancellation the thread is abandoned and its result
    dropped.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def _run(self, fn: Callable[[ConversationRepository], T]) -> T:
        def work() -> T:
            with Session(self.engine) as db:
                return fn(ConversationRepository(db))

        return await to_thread.run_sync(work, abandon_on_cancel=True)

    async def find_participants(
        self, actor_id: UUID, user_ids: Sequence[UUID]
    ) -> list[ParticipantRecord]:
        def work(repository: ConversationRepository) -> list[ParticipantRecord]:
            rows = repository.list_visible_participants(actor_id, user_ids)
            return [
                ParticipantRecord(
                    conversation_id=row.conversation_id,
                    user_id=row.user_id,
                    created_at=row.created_at,
                )
                for row in rows
            ]

        return await self._run(work)

    async def create_conversation(self, created_by: UUID) -> UUID:
        def work(repository: ConversationRepository) -> UUID:
            return repository.create_conversation(created_by).id

        return await self._run(work)

    async def add_participant(
        self, actor_id: UUID, conversation_id: UUID, user_id: UUID
    ) -> None:
        def work(repository: ConversationRepository) -> None:
            repository.add_participant(actor_id, conversation_id, user_id)

        await self._run(work)
