"""Unit of Work implementation with proper async support"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...domain.repositories.unit_of_work import IUnitOfWork
from .order_store_impl import SqlAlchemyOrderStore

logger = logging.getLogger(__name__)


class SqlAlchemyUnitOfWork(IUnitOfWork):
    """One AsyncSession, and so one database transaction, per context"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self.session: AsyncSession = None

    async def __aenter__(self):
        self.session = self.session_factory()
        self.orders = SqlAlchemyOrderStore(self.session)
        return await super().__aenter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            await super().__aexit__(exc_type, exc_val, exc_tb)
        finally:
            await self.session.close()

    async def commit(self) -> None:
        """Commit transaction"""
        try:
            await self.session.commit()
            self._committed = True
        except Exception:
            logger.debug("Commit failed, rolling back", exc_info=True)
            await self.rollback()
            raise

    async def rollback(self) -> None:
        """Rollback transaction"""
        await self.session.rollback()
