"""Transaction boundary shared by every order store"""

from abc import ABC, abstractmethod

from .order_store import IOrderStore


class IUnitOfWork(ABC):
    """An order write and its ledger entries commit together or not at all.

    Implementations supply ``commit``/``rollback`` and set ``orders``; the
    context protocol lives here. Leaving the context with an exception
    (cancellation included) rolls back, leaving it cleanly commits unless
    ``commit`` already ran.
    """

    orders: IOrderStore
    _committed: bool = False

    async def __aenter__(self) -> 'IUnitOfWork':
        self._committed = False
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            await self.rollback()
        elif not self._committed:
            await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """Make staged writes visible; must set ``_committed`` on success"""

    @abstractmethod
    async def rollback(self) -> None:
        """Drop staged writes"""
