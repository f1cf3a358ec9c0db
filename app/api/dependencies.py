from uuid import UUID

from fastapi import Depends, Request
from jose import JWTError, jwt

from app.core.coalescer import RequestCoalescer, get_request_coalescer
from app.core.config import get_settings
from app.db.session import engine
from app.services.conversation_resolver import ConversationResolver
from app.services.conversation_store import SqlConversationStore
from app.services.direct_conversation_service import DirectConversationService
from app.utils.errors import INVALID_TOKEN, MISSING_TOKEN


def _extract_token(request: Request) -> str | None:
    authorization = request.headers.get("Authorization")
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token:
            return token
    return request.cookies.get("access_token")


async def get_current_user_id(request: Request) -> UUID:
    """Get the current user's id from a bearer token or the access_token cookie.

    Tokens are issued by the identity provider; only verification happens here.
    """
    token = _extract_token(request)
    if not token:
        raise MISSING_TOKEN()

    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
        return UUID(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise INVALID_TOKEN()


def get_direct_conversation_service(
    coalescer: RequestCoalescer = Depends(get_request_coalescer),
) -> DirectConversationService:
    """Build the resolution service over the shared engine and process-wide coalescer."""
    resolver = ConversationResolver(
        SqlConversationStore(engine),
        step_timeout_seconds=get_settings().RESOLVE_STEP_TIMEOUT_SECONDS,
    )
    return DirectConversationService(resolver, coalescer)
