import asyncio
import os
import tempfile
from typing import Any, AsyncGenerator, Generator
from uuid import UUID, uuid4

import pytest
from dotenv import load_dotenv

# Load environment variables
load_dotenv("../.env.TEST")

# Test database: a throwaway SQLite file, shared by the worker threads of the store
TEST_DB_DIR = tempfile.mkdtemp(prefix="dm_resolution_")
TEST_DATABASE_URL = os.getenv(
    "TEST_DATABASE_URL", f"sqlite:///{os.path.join(TEST_DB_DIR, 'test.db')}"
)
TEST_JWT_SECRET = "test_secret_key"

# Override settings before any app module reads them
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["JWT_SECRET_KEY"] = TEST_JWT_SECRET

from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from jose import jwt  # noqa: E402
from loguru import logger  # noqa: E402
from sqlmodel import Session, SQLModel, select  # noqa: E402

from app.core.coalescer import RequestCoalescer, get_request_coalescer  # noqa: E402
from app.core.error_classifier import ErrorKind, PermissionDeniedError, classify  # noqa: E402
from app.db.session import engine, get_db  # noqa: E402
from app.models.domain import Conversation, ConversationParticipant  # noqa: E402
from app.services.conversation_store import ParticipantRecord  # noqa: E402

logger.info(f"TEST_DATABASE_URL: {TEST_DATABASE_URL}")


def make_token(user_id: UUID, secret: str = TEST_JWT_SECRET) -> str:
    """Issue an access token the way the identity provider would."""
    return jwt.encode({"sub": str(user_id)}, secret, algorithm="HS256")


def count_conversations() -> int:
    with Session(engine) as session:
        return len(session.exec(select(Conversation)).all())


def participant_sets() -> dict[UUID, set[UUID]]:
    """Participant set of every conversation in the database."""
    with Session(engine) as session:
        sets: dict[UUID, set[UUID]] = {}
        for conversation in session.exec(select(Conversation)).all():
            sets[conversation.id] = set()
        for row in session.exec(select(ConversationParticipant)).all():
            sets.setdefault(row.conversation_id, set()).add(row.user_id)
        return sets


class UniqueViolation(Exception):
    """Stands in for a driver unique-violation error carrying its SQLSTATE."""

    def __init__(self, message: str = "duplicate key value violates unique constraint"):
        self.pgcode = "23505"
        super().__init__(message)


class FakeConversationStore:
    """In-memory ConversationStore with the same membership rules as the SQL store.

    Failures are injected per operation as a queue: each call pops the next
    entry, raising it unless it is None. Operations listed in ``hang`` never
    complete.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.conversations: dict[UUID, UUID] = {}
        self.participants: list[ParticipantRecord] = []
        self.calls: list[str] = []
        self.failures: dict[str, list[BaseException | None]] = {}
        self.hang: set[str] = set()

    async def _step(self, name: str) -> None:
        self.calls.append(name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.hang:
            await asyncio.Event().wait()
        queue = self.failures.get(name)
        if queue:
            error = queue.pop(0)
            if error is not None:
                raise error

    def _is_participant(self, conversation_id: UUID, user_id: UUID) -> bool:
        return any(
            p.conversation_id == conversation_id and p.user_id == user_id
            for p in self.participants
        )

    def add_row(self, conversation_id: UUID, user_id: UUID) -> None:
        self.conversations.setdefault(conversation_id, user_id)
        self.participants.append(
            ParticipantRecord(conversation_id=conversation_id, user_id=user_id)
        )

    def creation_count(self) -> int:
        return self.calls.count("create_conversation")

    async def find_participants(self, actor_id, user_ids):
        await self._step("find_participants")
        return [
            p
            for p in self.participants
            if p.user_id in set(user_ids)
            and self._is_participant(p.conversation_id, actor_id)
        ]

    async def create_conversation(self, created_by):
        await self._step("create_conversation")
        conversation_id = uuid4()
        self.conversations[conversation_id] = created_by
        return conversation_id

    async def add_participant(self, actor_id, conversation_id, user_id):
        record = ParticipantRecord(conversation_id=conversation_id, user_id=user_id)
        try:
            await self._step("add_participant")
        except Exception as e:
            # An injected conflict means a replayed insert already wrote the row.
            # Matched by SQLSTATE: tests may import this module under another name.
            if classify(e).kind == ErrorKind.CONFLICT and not self._is_participant(
                conversation_id, user_id
            ):
                self.participants.append(record)
            raise
        if user_id != actor_id and not self._is_participant(conversation_id, actor_id):
            raise PermissionDeniedError()
        if self._is_participant(conversation_id, user_id):
            raise UniqueViolation()
        self.participants.append(record)


@pytest.fixture
def user_a() -> UUID:
    return UUID("00000000-0000-4000-8000-00000000000a")


@pytest.fixture
def user_b() -> UUID:
    return UUID("00000000-0000-4000-8000-00000000000b")


@pytest.fixture
def user_c() -> UUID:
    return UUID("00000000-0000-4000-8000-00000000000c")


@pytest.fixture
def fake_store() -> FakeConversationStore:
    return FakeConversationStore()


@pytest.fixture
def coalescer() -> RequestCoalescer:
    return RequestCoalescer(ceiling_seconds=5.0)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        yield session


@pytest.fixture(scope="function")
def test_app(db: Session, coalescer: RequestCoalescer) -> Generator[FastAPI, None, None]:
    """Create a fresh FastAPI app for testing"""
    from app.main import app

    def override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_request_coalescer] = lambda: coalescer
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def make_client(test_app: FastAPI):
    """
    Factory fixture to create AsyncClient instances with optional custom headers.
    Uses ASGI transport to avoid real HTTP connections.
    """
    clients: list[AsyncClient] = []

    async def _make_client(headers: dict[str, Any] | None = None) -> AsyncClient:
        client = AsyncClient(
            transport=ASGITransport(app=test_app), base_url="http://test"
        )
        if headers:
            client.headers.update(headers)
        clients.append(client)
        return client

    yield _make_client
    for client in clients:
        await client.aclose()


@pytest.fixture(scope="function")
async def client(test_app: FastAPI, user_a: UUID) -> AsyncGenerator[AsyncClient, None]:
    """Client authenticated as user_a."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
        headers={"Authorization": f"Bearer {make_token(user_a)}"},
    ) as client:
        yield client
