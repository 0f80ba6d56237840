"""
Order lifecycle service bootstrap
"""

import asyncio
import logging
from typing import Optional

from .application.use_cases.order_lifecycle import OrderLifecycleEngine
from .core.config import OrderHooks, Settings, settings as default_settings
from .core.logging import configure_logging
from .db.database import create_engine_from_settings, create_session_factory, init_models
from .infrastructure.repositories.unit_of_work_impl import SqlAlchemyUnitOfWork

logger = logging.getLogger(__name__)


def build_lifecycle_engine(
    settings: Optional[Settings] = None,
    hooks: Optional[OrderHooks] = None,
    engine=None,
) -> OrderLifecycleEngine:
    """Wire the lifecycle engine to the SQL store described by ``settings``"""
    settings = settings or default_settings
    engine = engine or create_engine_from_settings(settings)
    session_factory = create_session_factory(engine)
    return OrderLifecycleEngine(
        uow_factory=lambda: SqlAlchemyUnitOfWork(session_factory),
        config=settings.engine_config(hooks),
    )


async def create_schema(settings: Optional[Settings] = None) -> None:
    """Create tables directly (local development; use alembic elsewhere)"""
    settings = settings or default_settings
    engine = create_engine_from_settings(settings)
    try:
        await init_models(engine)
    finally:
        await engine.dispose()
    logger.info("Schema ready at %s", engine.url.render_as_string(hide_password=True))


if __name__ == "__main__":
    configure_logging()
    asyncio.run(create_schema())
