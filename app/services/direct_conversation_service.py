from uuid import UUID

from app.core.coalescer import RequestCoalescer, pair_key
from app.services.conversation_resolver import ConversationResolver


class DirectConversationService:
    """Entry point used by the messaging layer and the "Message" action."""

    def __init__(
        self, resolver: ConversationResolver, coalescer: RequestCoalescer
    ) -> None:
        self.resolver: ConversationResolver = resolver
        self.coalescer: RequestCoalescer = coalescer

    async def resolve_direct_conversation(
        self, current_user_id: UUID, other_user_id: UUID
    ) -> UUID:
        """Get or create the DM conversation between two users.

        Concurrent calls for the same pair, in either order, share one
        resolution. Never retried here; callers decide whether to offer a retry.
        """
        return await self.coalescer.with_coalescing(
            pair_key(current_user_id, other_user_id),
            lambda: self.resolver.resolve(current_user_id, other_user_id),
        )
