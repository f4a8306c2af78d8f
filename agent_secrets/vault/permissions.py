"""Scope-based permission rules of the Secret Store.

| scope  | read                        | write / delete / share       |
|--------|-----------------------------|------------------------------|
| global | always                      | requester is the agent       |
| world  | requester is a world member | requester is OWNER or ADMIN  |
| user   | requester is the user       | requester is the user        |
"""
from typing import Optional

from .backends import RoleLookup
from .models import AccessAction, Role, SecretContext, SecretScope

MEMBER_ROLES = frozenset({Role.MEMBER, Role.ADMIN, Role.OWNER})
MANAGER_ROLES = frozenset({Role.ADMIN, Role.OWNER})


def decide(
    action: AccessAction, context: SecretContext, role: Optional[Role] = None
) -> bool:
    """Pure permission decision for ``action`` under ``context``.

    ``role`` is the requester's world role and is only consulted at world
    scope; a missing role counts as ``Role.NONE``.
    """
    if context.scope is SecretScope.GLOBAL:
        if action is AccessAction.READ:
            return True
        return context.requester_id is not None and (
            context.requester_id == context.agent_id
        )
    if context.scope is SecretScope.WORLD:
        if not context.world_id:
            return False
        role = role or Role.NONE
        if action is AccessAction.READ:
            return role in MEMBER_ROLES
        return role in MANAGER_ROLES
    if context.scope is SecretScope.USER:
        if not context.user_id:
            return False
        return context.requester_id == context.user_id
    return False


class PermissionEvaluator:
    """Resolves world roles, then applies :func:`decide`."""

    def __init__(self, role_lookup: RoleLookup):
        self._roles = role_lookup

    async def allow(self, action: AccessAction, context: SecretContext) -> bool:
        role = None
        if context.scope is SecretScope.WORLD and context.world_id:
            role = await self._roles.get_role(
                context.world_id, context.requester_id
            )
        return decide(action, context, role)
