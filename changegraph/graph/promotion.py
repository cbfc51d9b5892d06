"""
Environment promotion.

Environments form an ordered ledger (dev, test, prod, ...). Promoting
between two of them goes through an intent with its own small state
machine:

    draft -> previewed -> approved -> executed
                       \\-> rejected

Reaching ``executed`` invokes the on-executed hook, which is where install
and binding side effects owned by other collaborators are wired in.
"""

from typing import Callable, Dict, List, Optional, Tuple

import structlog

from ..db.models import EnvironmentModel, PromotionIntentModel
from ..enums import PromotionIntentStatus
from ..errors import InvalidTransitionError, NotFoundError
from ..events import DomainEvent, DomainEventType, EventBus
from ..storage.port import SchemaStorage
from .contracts import GraphDiff

logger = structlog.get_logger()

INTENT_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    PromotionIntentStatus.DRAFT.value: (PromotionIntentStatus.PREVIEWED.value,),
    PromotionIntentStatus.PREVIEWED.value: (
        PromotionIntentStatus.APPROVED.value,
        PromotionIntentStatus.REJECTED.value,
    ),
    PromotionIntentStatus.APPROVED.value: (PromotionIntentStatus.EXECUTED.value,),
}

INTENT_EVENTS: Dict[str, DomainEventType] = {
    PromotionIntentStatus.PREVIEWED.value: DomainEventType.PROMOTION_INTENT_PREVIEWED,
    PromotionIntentStatus.APPROVED.value: DomainEventType.PROMOTION_INTENT_APPROVED,
    PromotionIntentStatus.EXECUTED.value: DomainEventType.PROMOTION_INTENT_EXECUTED,
    PromotionIntentStatus.REJECTED.value: DomainEventType.PROMOTION_INTENT_REJECTED,
}

OnExecutedHook = Callable[[SchemaStorage, PromotionIntentModel], None]


class PromotionService:
    """Environments, environment diffs and promotion intents."""

    def __init__(
        self,
        storage: SchemaStorage,
        bus: Optional[EventBus] = None,
        on_executed: Optional[OnExecutedHook] = None,
    ):
        self.storage = storage
        self.bus = bus
        self.on_executed = on_executed

    # Environments

    def create_environment(self, name: str, slug: str, ordinal: int = 0) -> EnvironmentModel:
        """Create a new Environment."""
        return self.storage.create_environment(name=name, slug=slug, ordinal=ordinal)

    def list_environments(self) -> List[EnvironmentModel]:
        """List Environments by ordinal."""
        return self.storage.get_environments()

    def compute_environment_diff(self, source_env_id: str, target_env_id: str) -> GraphDiff:
        """Diff the package state of two environments.

        Environments do not yet carry their own package state, so the diff
        is always empty; it is still announced so consumers can rely on
        the event.
        """
        self._require_environments(source_env_id, target_env_id)
        diff = GraphDiff()
        self._emit(
            DomainEvent(
                DomainEventType.DIFF_COMPUTED,
                "computed",
                f"{source_env_id}:{target_env_id}",
            )
        )
        return diff

    def promote_packages(self, source_env_id: str, target_env_id: str) -> None:
        """Promote installed packages from one environment to another."""
        self._require_environments(source_env_id, target_env_id)
        self._emit(
            DomainEvent(
                DomainEventType.PACKAGE_PROMOTED,
                "promoted",
                f"{source_env_id}→{target_env_id}",
            )
        )
        logger.info(
            "packages_promoted",
            tenant_id=self.storage.ctx.tenant_id,
            source_environment_id=source_env_id,
            target_environment_id=target_env_id,
        )

    # Intents

    def create_promotion_intent(
        self, source_env_id: str, target_env_id: str
    ) -> PromotionIntentModel:
        """Create a new PromotionIntent in draft."""
        self._require_environments(source_env_id, target_env_id)
        intent = self.storage.create_promotion_intent(
            source_environment_id=source_env_id,
            target_environment_id=target_env_id,
            created_by=self.storage.ctx.user_id,
        )
        self._emit(
            DomainEvent(DomainEventType.PROMOTION_INTENT_CREATED, "created", intent.id)
        )
        return intent

    def get_intent(self, intent_id: str) -> Optional[PromotionIntentModel]:
        """Get a PromotionIntent by ID."""
        return self.storage.get_promotion_intent_by_id(intent_id)

    def list_intents(self) -> List[PromotionIntentModel]:
        """List PromotionIntents, newest first."""
        return self.storage.get_promotion_intents()

    def transition_intent(self, intent_id: str, new_status: str) -> PromotionIntentModel:
        """Move a PromotionIntent along its state machine."""
        intent = self.storage.get_promotion_intent_by_id(intent_id)
        if not intent:
            raise NotFoundError("Promotion intent not found")

        new_status = getattr(new_status, "value", new_status)
        if new_status not in INTENT_TRANSITIONS.get(intent.status, ()):
            raise InvalidTransitionError(
                f"Invalid intent transition from '{intent.status}' to '{new_status}'"
            )

        approved_by = None
        if new_status == PromotionIntentStatus.APPROVED.value:
            approved_by = self.storage.ctx.user_id

        updated = self.storage.update_promotion_intent(
            intent_id, new_status, approved_by=approved_by
        )
        if not updated:
            raise NotFoundError("Promotion intent not found")

        if new_status == PromotionIntentStatus.EXECUTED.value and self.on_executed:
            self.on_executed(self.storage, updated)

        self._emit(DomainEvent(INTENT_EVENTS[new_status], new_status, intent_id))
        logger.info(
            "promotion_intent_transitioned",
            tenant_id=self.storage.ctx.tenant_id,
            intent_id=intent_id,
            status=new_status,
        )
        return updated

    def _require_environments(self, *environment_ids: str) -> None:
        for environment_id in environment_ids:
            if not self.storage.get_environment_by_id(environment_id):
                raise NotFoundError(f"Environment {environment_id} not found")

    def _emit(self, event: DomainEvent) -> None:
        if self.bus is not None:
            self.bus.emit(self.storage, event)
