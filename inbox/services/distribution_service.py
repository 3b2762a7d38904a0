import logging
from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from inbox.domain.distribution import pick_least_loaded, unique_participants
from inbox.domain.enums import ConversationStatus, DistributionMode
from inbox.domain.settings import DistributionSettings
from inbox.infra.db.models import Conversation
from inbox.infra.db.repositories import ConversationRepository, SettingsRepository
from inbox.infra.realtime.hub import ChangePublisher
from inbox.services.errors import ConversationNotFoundError
from inbox.services.notifier import ChangeNotifier

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DistributionResult:
    distributed: int = 0
    errors: int = 0


class DistributionService:
    """Least-loaded assignment of conversations to agents."""

    def __init__(
        self,
        session: AsyncSession,
        conversations: ConversationRepository | None = None,
        settings: SettingsRepository | None = None,
        realtime: ChangePublisher | None = None,
    ) -> None:
        self.session = session
        self.conversations = conversations or ConversationRepository(session)
        self.settings = settings or SettingsRepository(session)
        self.notifier = ChangeNotifier(realtime)

    async def assign(self, conversation_id: UUID, agent_id: str | None) -> Conversation:
        conversation = await self._get_conversation_or_raise(conversation_id)
        cleaned_agent_id = (agent_id or "").strip() or None
        await self.conversations.assign(conversation, cleaned_agent_id)
        await self.session.commit()
        await self.session.refresh(conversation)
        await self.notifier.conversation_assigned(conversation)
        return conversation

    async def get_active_leads_count(self) -> dict[str, int]:
        return await self.conversations.count_active_by_assignee()

    async def get_next_collaborator(self, participants: Sequence[str]) -> str | None:
        candidates = unique_participants(participants)
        if not candidates:
            return None
        loads = await self.get_active_leads_count()
        return pick_least_loaded(candidates, loads)

    async def distribute_unassigned_leads(self) -> DistributionResult:
        result = DistributionResult()
        settings = await self.settings.get_distribution_settings()
        if not settings.is_active:
            return result

        loads = await self.get_active_leads_count()
        # Rows are re-read one by one: a rollback expires everything loaded so far.
        pending_ids = [
            conversation.id for conversation in await self.conversations.list_unassigned_open()
        ]
        for conversation_id in pending_ids:
            agent_id = pick_least_loaded(settings.participants, loads)
            if agent_id is None:
                break

            try:
                conversation = await self.conversations.get_by_id(conversation_id)
                if conversation is None or conversation.assigned_to is not None:
                    continue
                await self.conversations.assign(conversation, agent_id)
                await self.session.commit()
            except Exception:
                logger.exception(
                    "Lead distribution failed conversation_id=%s agent_id=%s",
                    conversation_id,
                    agent_id,
                )
                await self.session.rollback()
                result.errors += 1
                continue

            loads[agent_id] = loads.get(agent_id, 0) + 1
            result.distributed += 1
            await self.notifier.conversation_assigned(conversation)

        logger.info(
            "Lead distribution finished distributed=%s errors=%s",
            result.distributed,
            result.errors,
        )
        return result

    async def auto_assign(self, conversation: Conversation) -> str | None:
        """Assign a brand-new conversation when distribution runs in auto mode.

        Does not commit; the caller owns the transaction.
        """
        settings = await self.settings.get_distribution_settings()
        if not settings.is_active or settings.mode != DistributionMode.AUTO:
            return None

        agent_id = pick_least_loaded(
            settings.participants, await self.get_active_leads_count()
        )
        if agent_id is not None:
            await self.conversations.assign(conversation, agent_id)
        return agent_id

    async def get_distribution_settings(self) -> DistributionSettings:
        return await self.settings.get_distribution_settings()

    async def save_distribution_settings(
        self, settings: DistributionSettings
    ) -> DistributionSettings:
        await self.settings.save_distribution_settings(settings)
        await self.session.commit()
        return await self.settings.get_distribution_settings()

    async def transfer_to_post_sales(self, conversation_id: UUID) -> Conversation:
        conversation = await self._get_conversation_or_raise(conversation_id)
        await self.conversations.move_to_post_sales(conversation)
        await self.session.commit()
        await self.session.refresh(conversation)
        await self.notifier.conversation_updated(conversation)
        return conversation

    async def toggle_status(self, conversation_id: UUID) -> Conversation:
        conversation = await self._get_conversation_or_raise(conversation_id)
        next_status = (
            ConversationStatus.OPEN
            if conversation.status == ConversationStatus.CLOSED
            else ConversationStatus.CLOSED
        )
        await self.conversations.set_status(conversation, next_status)
        await self.session.commit()
        await self.session.refresh(conversation)
        await self.notifier.conversation_updated(conversation)
        return conversation

    async def _get_conversation_or_raise(self, conversation_id: UUID) -> Conversation:
        conversation = await self.conversations.get_by_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation
