from __future__ import annotations

import logging
from typing import Optional

from ..domain import ROLES, UserWithRoles
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..propagation import RoleStore
from .access import Actor, require

logger = logging.getLogger(__name__)


def _check_role(role: object) -> None:
    if role not in ROLES:
        raise ValidationError({"role": f"Role must be one of: {', '.join(ROLES)}"})


class RoleService:
    def __init__(self, *, store: RoleStore) -> None:
        self.store = store

    async def actor_for(self, user_id: str) -> Actor:
        return Actor.with_roles(user_id, await self.store.roles_for(user_id))

    async def list_users(self, actor: Optional[Actor]) -> list[UserWithRoles]:
        require(actor, "manage_roles")
        roles: dict[str, list[str]] = {}
        for user_id, role in await self.store.list_assignments():
            roles.setdefault(user_id, []).append(role)

        return [
            UserWithRoles(
                user_id=p.user_id,
                full_name=p.full_name,
                email=p.email,
                roles=tuple(roles.get(p.user_id, ())),
                created_at=p.created_at,
            )
            for p in await self.store.list_profiles()
        ]

    async def assign_role(self, actor: Optional[Actor], user_id: str, role: str) -> None:
        actor = require(actor, "manage_roles")
        _check_role(role)
        if await self.store.get_profile(user_id) is None:
            raise NotFoundError(f"User {user_id} not found.")

        if not await self.store.add(user_id, role, actor_id=actor.user_id):
            raise ValidationError({"role": "User already has this role"})
        logger.info("Role %s assigned to %s by %s", role, user_id, actor.user_id)

    async def remove_role(self, actor: Optional[Actor], user_id: str, role: str) -> None:
        actor = require(actor, "manage_roles")
        _check_role(role)

        # re-check against stored roles, the actor may be stale
        if "admin" not in await self.store.roles_for(actor.user_id):
            raise AuthorizationError(f"User {actor.user_id} is no longer an admin.")
        if user_id == actor.user_id and role == "admin":
            raise AuthorizationError("You cannot remove your own admin role")

        if not await self.store.remove(user_id, role, actor_id=actor.user_id):
            raise NotFoundError(f"User {user_id} does not have the {role} role.")
        logger.info("Role %s removed from %s by %s", role, user_id, actor.user_id)
