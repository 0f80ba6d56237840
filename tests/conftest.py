from pathlib import Path

import pytest

from orderflow.application.use_cases.order_lifecycle import OrderLifecycleEngine
from orderflow.core.config import (
    AutoTransitionConfig,
    FeatureFlags,
    OrderEngineConfig,
    OrderHooks,
    OrderNumberConfig,
)
from orderflow.infrastructure.repositories.memory_order_store import InMemoryOrderDatabase


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)


def build_config(
    prefix="ORD",
    length=8,
    confirm_on_payment=True,
    complete_on_fulfillment=True,
    allow_edit=True,
    allow_cancel=True,
    track_events=True,
    hooks=None,
    operation_timeout=None,
) -> OrderEngineConfig:
    return OrderEngineConfig(
        order_number=OrderNumberConfig(prefix=prefix, length=length),
        auto_transitions=AutoTransitionConfig(
            confirm_on_payment=confirm_on_payment,
            complete_on_fulfillment=complete_on_fulfillment,
        ),
        features=FeatureFlags(allow_edit=allow_edit, allow_cancel=allow_cancel, track_events=track_events),
        hooks=hooks or OrderHooks(),
        operation_timeout=operation_timeout,
    )


def order_payload(**overrides) -> dict:
    payload = {
        "email": "a@b.com",
        "items": [{"product_name": "Widget", "quantity": 2, "price": 10}],
        "shipping_address": {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "address1": "12 Analytical Row",
            "city": "London",
            "postal_code": "N1 9GU",
            "country": "GB",
        },
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def database():
    return InMemoryOrderDatabase()


@pytest.fixture
def make_engine(database):
    """Engine over the shared in-memory database with config overrides"""

    def _make(clock=None, **overrides) -> OrderLifecycleEngine:
        kwargs = {"clock": clock} if clock is not None else {}
        return OrderLifecycleEngine(database.unit_of_work, build_config(**overrides), **kwargs)

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def payload():
    """Factory for create() input; keyword overrides replace top-level keys"""
    return order_payload


@pytest.fixture
def config_factory():
    return build_config


@pytest.fixture
async def sql_engine(tmp_path):
    """File-backed SQLite so every unit of work gets its own connection"""
    from sqlalchemy.ext.asyncio import create_async_engine

    from orderflow.db.database import init_models

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(sql_engine):
    from orderflow.db.database import create_session_factory

    return create_session_factory(sql_engine)
