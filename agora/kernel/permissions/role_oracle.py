"""
Role Oracle: is a principal an administrator?

Reads the principal's tier directly. It never goes through the policy
evaluator, so admin checks inside policies cannot recurse.
"""

import uuid
from typing import Dict, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from agora.kernel.models.principal import Principal, PrincipalTier


class RoleOracle:
    """
    Per-request admin lookup.

    Results are cached on the instance; create one instance per request.
    Pass use_cache=False where a decision must see the committed tier,
    as the escalation guard does.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._cache: Dict[uuid.UUID, bool] = {}

    async def is_admin(
        self,
        principal_id: Optional[uuid.UUID],
        use_cache: bool = True,
    ) -> bool:
        if principal_id is None:
            return False
        if use_cache and principal_id in self._cache:
            return self._cache[principal_id]

        query = select(Principal.tier, Principal.is_archived).where(Principal.id == principal_id)
        result = await self.session.execute(query)
        row = result.one_or_none()

        admin = bool(row) and row.tier == PrincipalTier.ADMIN and not row.is_archived
        self._cache[principal_id] = admin
        return admin

    async def admin_count(self) -> int:
        """Number of active, non-archived admins."""
        query = select(Principal.id).where(
            and_(
                Principal.tier == PrincipalTier.ADMIN,
                Principal.is_archived == False,  # noqa: E712
            )
        )
        result = await self.session.execute(query)
        return len(result.all())

    async def admin_exists(self) -> bool:
        return await self.admin_count() > 0

    def forget(self, principal_id: uuid.UUID) -> None:
        """Drop a cached answer after the tier changed in this request."""
        self._cache.pop(principal_id, None)
