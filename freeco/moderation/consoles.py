"""Role-scoped façades over the moderation engine.

The moderator and admin surfaces share one engine and one set of transition
rules. They differ only in who may open them and in the admin-only extras
(role assignment and system configuration).
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from freeco.auth.models import Actor, Role
from freeco.auth.permissions import require_role
from freeco.config.system_config import SystemConfig, SystemConfigStore
from freeco.entities.models import EntityFamily
from freeco.moderation.engine import BulkResult, ModerationEngine, ModerationResult
from freeco.moderation.status_machine import Action


class ModeratorConsole:
    """Moderation actions available to moderators and admins."""

    minimum_role = Role.moderator

    def __init__(self, engine: ModerationEngine, actor: Actor) -> None:
        require_role(actor, self.minimum_role)
        self.engine = engine
        self.actor = actor

    async def moderate(
        self,
        family: EntityFamily | str,
        entity_id: str,
        action: Action | str,
        reason: Optional[str] = None,
        role: Optional[Role | str] = None,
    ) -> ModerationResult:
        return await self.engine.moderate(
            family, entity_id, action, self.actor, reason=reason, role=role
        )

    async def approve(self, family: EntityFamily | str, entity_id: str) -> ModerationResult:
        return await self.moderate(family, entity_id, Action.approve)

    async def reject(
        self, family: EntityFamily | str, entity_id: str, reason: Optional[str] = None
    ) -> ModerationResult:
        return await self.moderate(family, entity_id, Action.reject, reason=reason)

    async def activate(self, family: EntityFamily | str, entity_id: str) -> ModerationResult:
        return await self.moderate(family, entity_id, Action.activate)

    async def deactivate(self, family: EntityFamily | str, entity_id: str) -> ModerationResult:
        return await self.moderate(family, entity_id, Action.deactivate)

    async def suspend(self, user_id: str) -> ModerationResult:
        return await self.moderate(EntityFamily.user, user_id, Action.suspend)

    async def delete(self, family: EntityFamily | str, entity_id: str) -> ModerationResult:
        return await self.moderate(family, entity_id, Action.delete)

    async def bulk(
        self,
        family: EntityFamily | str,
        entity_ids: Iterable[str],
        action: Action | str,
        reason: Optional[str] = None,
        role: Optional[Role | str] = None,
    ) -> BulkResult:
        return await self.engine.bulk_moderate(
            family, entity_ids, action, self.actor, reason=reason, role=role
        )


class AdminConsole(ModeratorConsole):
    """Everything a moderator can do, plus role assignment and system config."""

    minimum_role = Role.admin

    def __init__(
        self,
        engine: ModerationEngine,
        actor: Actor,
        config_store: Optional[SystemConfigStore] = None,
    ) -> None:
        super().__init__(engine, actor)
        self.config_store = config_store

    async def set_role(self, user_id: str, role: Role | str) -> ModerationResult:
        return await self.engine.moderate(
            EntityFamily.user, user_id, Action.set_role, self.actor, role=role
        )

    async def bulk_set_role(self, user_ids: Iterable[str], role: Role | str) -> BulkResult:
        return await self.engine.bulk_moderate(
            EntityFamily.user, user_ids, Action.set_role, self.actor, role=role
        )

    def _config(self) -> SystemConfigStore:
        if self.config_store is None:
            raise RuntimeError("AdminConsole was created without a config store")
        return self.config_store

    async def get_config(self) -> SystemConfig:
        return await self._config().get()

    async def update_config(self, changes: dict[str, Any]) -> SystemConfig:
        return await self._config().update(changes)

    async def replace_config(self, config: SystemConfig) -> SystemConfig:
        return await self._config().replace(config)
