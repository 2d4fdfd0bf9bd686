# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Per-entity-type authorization for reading another actor's history.

Each entity type maps to an :class:`AccessStrategy`.  Types without a
registered strategy are denied unless the verifier is built with
``allow_unregistered=True``.
"""

from __future__ import annotations

import abc
import logging
from enum import StrEnum

from tasktrail.access.membership import MembershipRepository
from tasktrail.core.constants import EntityType
from tasktrail.core.exceptions import AccessDeniedError, NotFoundError, ValidationError

logger = logging.getLogger("tasktrail.access.verifier")


class AccessDecision(StrEnum):
    AUTHORIZED = "authorized"
    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"


class AccessStrategy(abc.ABC):
    """Decides whether a requester may read one entity's history."""

    @abc.abstractmethod
    async def check_access(self, requester_id: str, entity_id: str) -> AccessDecision:
        ...


class WorkspaceAccess(AccessStrategy):
    """Active members may read a workspace's history.

    A missing or deleted workspace is denied exactly like a non-member one.
    """

    def __init__(self, members: MembershipRepository) -> None:
        self._members = members

    async def check_access(self, requester_id: str, entity_id: str) -> AccessDecision:
        if await self._members.is_active_member(requester_id, entity_id):
            return AccessDecision.AUTHORIZED
        return AccessDecision.ACCESS_DENIED


class WorkspaceChildAccess(AccessStrategy):
    """Tasks and sections: resolve the owning workspace, then check membership."""

    def __init__(self, members: MembershipRepository, table: str) -> None:
        self._members = members
        self._table = table

    async def check_access(self, requester_id: str, entity_id: str) -> AccessDecision:
        workspace_id = await self._members.owning_workspace(self._table, entity_id)
        if workspace_id is None:
            return AccessDecision.NOT_FOUND
        if await self._members.is_active_member(requester_id, workspace_id):
            return AccessDecision.AUTHORIZED
        return AccessDecision.ACCESS_DENIED


class WorkspaceMemberAccess(AccessStrategy):
    """A membership row is readable by active members of its workspace.

    Unknown rows are denied rather than reported missing.
    """

    def __init__(self, members: MembershipRepository) -> None:
        self._members = members

    async def check_access(self, requester_id: str, entity_id: str) -> AccessDecision:
        workspace_id = await self._members.membership_workspace(entity_id)
        if workspace_id is not None and await self._members.is_active_member(
            requester_id, workspace_id
        ):
            return AccessDecision.AUTHORIZED
        return AccessDecision.ACCESS_DENIED


class UserAccess(AccessStrategy):
    """Users see their own history, and that of anyone they share a workspace with.

    Unknown user ids are denied like strangers.
    """

    def __init__(self, members: MembershipRepository) -> None:
        self._members = members

    async def check_access(self, requester_id: str, entity_id: str) -> AccessDecision:
        if requester_id == entity_id:
            return AccessDecision.AUTHORIZED
        if await self._members.share_workspace(requester_id, entity_id):
            return AccessDecision.AUTHORIZED
        return AccessDecision.ACCESS_DENIED


class DenyAccess(AccessStrategy):
    """Never readable through the timeline, whatever the registry default."""

    async def check_access(self, requester_id: str, entity_id: str) -> AccessDecision:
        return AccessDecision.ACCESS_DENIED


class EntityAccessVerifier:
    """Registry of access strategies keyed by entity type."""

    def __init__(self, *, allow_unregistered: bool = False) -> None:
        self._strategies: dict[EntityType, AccessStrategy] = {}
        self._allow_unregistered = allow_unregistered

    def register(self, entity_type: EntityType | str, strategy: AccessStrategy) -> None:
        self._strategies[_parse_entity_type(entity_type)] = strategy

    def registered_types(self) -> list[EntityType]:
        return sorted(self._strategies)

    async def check(
        self, requester_id: str, entity_type: EntityType | str, entity_id: str
    ) -> AccessDecision:
        """Return the decision for *requester_id* reading the entity's history.

        Raises :class:`ValidationError` for an unknown entity type.
        """
        kind = _parse_entity_type(entity_type)
        strategy = self._strategies.get(kind)
        if strategy is None:
            if self._allow_unregistered:
                return AccessDecision.AUTHORIZED
            logger.debug("No access strategy for %s; denying", kind)
            return AccessDecision.ACCESS_DENIED
        return await strategy.check_access(requester_id, entity_id)

    async def ensure(
        self, requester_id: str, entity_type: EntityType | str, entity_id: str
    ) -> None:
        """Like :meth:`check`, but raise unless the decision is AUTHORIZED."""
        decision = await self.check(requester_id, entity_type, entity_id)
        if decision == AccessDecision.NOT_FOUND:
            raise NotFoundError(f"{entity_type} {entity_id} not found")
        if decision == AccessDecision.ACCESS_DENIED:
            raise AccessDeniedError(f"Access denied to {entity_type} {entity_id}")


def build_default_verifier(
    members: MembershipRepository, *, allow_unregistered: bool = False
) -> EntityAccessVerifier:
    """Verifier covering the workspace hierarchy and users.

    Sessions and API keys are always denied, even when unregistered types
    are allowed.
    """
    verifier = EntityAccessVerifier(allow_unregistered=allow_unregistered)
    verifier.register(EntityType.WORKSPACE, WorkspaceAccess(members))
    verifier.register(EntityType.SECTION, WorkspaceChildAccess(members, "sections"))
    verifier.register(EntityType.TASK, WorkspaceChildAccess(members, "tasks"))
    verifier.register(EntityType.WORKSPACE_MEMBER, WorkspaceMemberAccess(members))
    verifier.register(EntityType.USER, UserAccess(members))
    verifier.register(EntityType.SESSION, DenyAccess())
    verifier.register(EntityType.API_KEY, DenyAccess())
    return verifier


def _parse_entity_type(entity_type: EntityType | str) -> EntityType:
    try:
        return EntityType(entity_type)
    except ValueError:
        raise ValidationError(f"Invalid entity type: {entity_type!r}") from None
