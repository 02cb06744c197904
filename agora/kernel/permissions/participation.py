"""
Participation Index: which deliberations does a principal belong to?

Direct membership read. Like the role oracle, it never consults the policy
evaluator.
"""

import uuid
from typing import Dict, FrozenSet, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agora.kernel.models.deliberation import Participant


class ParticipationIndex:
    """Per-request membership cache. Anonymous principals participate in nothing."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._memberships: Dict[uuid.UUID, FrozenSet[uuid.UUID]] = {}

    async def deliberations_for(self, principal_id: Optional[uuid.UUID]) -> FrozenSet[uuid.UUID]:
        if principal_id is None:
            return frozenset()
        if principal_id in self._memberships:
            return self._memberships[principal_id]

        query = select(Participant.deliberation_id).where(Participant.principal_id == principal_id)
        result = await self.session.execute(query)
        memberships = frozenset(row[0] for row in result.all())

        self._memberships[principal_id] = memberships
        return memberships
