"""
Common base for the per-entity repositories.
"""

from sqlalchemy.ext.asyncio import AsyncSession


class Repository:
    """
    Thin data-access wrapper over a caller-owned session; repositories flush
    but never commit, so the caller decides the transaction boundary.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _delete_where(self, statement) -> int:
        result = await self.session.execute(
            statement.execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def _add(self, obj):
        self.session.add(obj)
        await self.session.flush()
        return obj
