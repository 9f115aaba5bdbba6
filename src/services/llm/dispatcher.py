"""Top-level dispatch: select, execute with fallback, account."""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional, Sequence

from .adapters import GenerationOptions
from .errors import DispatchError
from .fallback import DispatchResult, FallbackCoordinator
from .history import ChatTurn, ConversationStore
from .ledger import UsageLedger
from .policies import MAX_HISTORY_WINDOW
from .router import ProviderRouter, SelectionContext

logger = logging.getLogger(__name__)


class Dispatcher:
    """Answers one request end to end.

    Usage is recorded exactly once per completed dispatch, against the
    provider that actually answered. A terminal failure is recorded only
    when a completed call incurred cost.
    """

    def __init__(
        self,
        router: ProviderRouter,
        coordinator: FallbackCoordinator,
        ledger: UsageLedger,
        conversations: Optional[ConversationStore] = None,
        history_window: int = MAX_HISTORY_WINDOW,
    ) -> None:
        self.router = router
        self.coordinator = coordinator
        self.ledger = ledger
        self.conversations = conversations
        self.history_window = history_window

    async def dispatch(
        self,
        ctx: SelectionContext,
        conversation_id: Optional[str] = None,
        history: Optional[Sequence[ChatTurn]] = None,
        options: Optional[GenerationOptions] = None,
    ) -> DispatchResult:
        day = self.ledger.today()

        if history is None and conversation_id and self.conversations is not None:
            history = await self.conversations.get_recent_turns(conversation_id, self.history_window)

        selection = await self.router.select(ctx)

        try:
            result = await self.coordinator.execute(selection.provider, ctx.message, history, options)
        except DispatchError as error:
            await self._record_failed_dispatch(ctx.user_id, day, error)
            raise

        await self._record(ctx.user_id, day, result)
        result.metadata["selection_reason"] = selection.reason
        result.metadata["probes"] = dict(selection.attempted_providers)
        return result

    async def _record(self, user_id: str, day: date, result: DispatchResult) -> None:
        try:
            await self.ledger.record_usage(user_id, day, result.provider, result.cost)
        except Exception:
            logger.exception("Failed to record usage for %s (%s, %.6f)", user_id, result.provider.value, result.cost)

    async def _record_failed_dispatch(self, user_id: str, day: date, error: DispatchError) -> None:
        cost = error.incurred_cost
        if cost <= 0:
            return

        provider = error.provider
        if error.fallback_provider is not None and error.fallback_error is not None and error.fallback_error.cost > 0:
            provider = error.fallback_provider

        try:
            await self.ledger.record_usage(user_id, day, provider, cost)
        except Exception:
            logger.exception("Failed to record usage for failed dispatch of %s", user_id)
