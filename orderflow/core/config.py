"""Application configuration and the immutable order engine configuration"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class OrderHooks:
    """Optional extension points; each may be a plain function or a coroutine function.

    ``before_*`` hooks run before anything is written and may return a
    replacement input. The others run after the unit of work committed.
    """
    before_create: Optional[Callable[..., Any]] = None
    after_create: Optional[Callable[..., Any]] = None
    before_update: Optional[Callable[..., Any]] = None
    on_status_change: Optional[Callable[..., Any]] = None
    on_payment_status_change: Optional[Callable[..., Any]] = None
    after_confirm: Optional[Callable[..., Any]] = None
    on_order_shipped: Optional[Callable[..., Any]] = None
    on_order_delivered: Optional[Callable[..., Any]] = None
    after_cancel: Optional[Callable[..., Any]] = None


class OrderNumberConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    prefix: str = Field(default="ORD", max_length=20)
    length: int = Field(default=8, ge=1, le=32)


class AutoTransitionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    confirm_on_payment: bool = True
    complete_on_fulfillment: bool = True


class FeatureFlags(BaseModel):
    model_config = ConfigDict(frozen=True)

    allow_edit: bool = True
    allow_cancel: bool = True
    track_events: bool = True


class OrderEngineConfig(BaseModel):
    """Built once at startup and shared by every engine instance"""
    model_config = ConfigDict(frozen=True)

    default_currency: str = Field(default="USD", min_length=3, max_length=3)
    order_number: OrderNumberConfig = Field(default_factory=OrderNumberConfig)
    auto_transitions: AutoTransitionConfig = Field(default_factory=AutoTransitionConfig)
    features: FeatureFlags = Field(default_factory=FeatureFlags)
    hooks: OrderHooks = Field(default_factory=OrderHooks)
    # Seconds; applies when a call passes no timeout of its own
    operation_timeout: Optional[float] = Field(default=None, gt=0)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    PROJECT_NAME: str = "orderflow"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./orderflow.db"
    DATABASE_ECHO: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

    # Order engine
    DEFAULT_CURRENCY: str = "USD"
    ORDER_NUMBER_PREFIX: str = "ORD"
    ORDER_NUMBER_LENGTH: int = 8
    CONFIRM_ON_PAYMENT: bool = True
    COMPLETE_ON_FULFILLMENT: bool = True
    ALLOW_EDIT: bool = True
    ALLOW_CANCEL: bool = True
    TRACK_EVENTS: bool = True
    OPERATION_TIMEOUT: Optional[float] = None

    # Development
    TESTING: bool = False
    ENVIRONMENT: str = "development"

    def engine_config(self, hooks: Optional[OrderHooks] = None) -> OrderEngineConfig:
        """Freeze the order-related settings into an engine configuration"""
        return OrderEngineConfig(
            default_currency=self.DEFAULT_CURRENCY,
            order_number=OrderNumberConfig(prefix=self.ORDER_NUMBER_PREFIX, length=self.ORDER_NUMBER_LENGTH),
            auto_transitions=AutoTransitionConfig(
                confirm_on_payment=self.CONFIRM_ON_PAYMENT,
                complete_on_fulfillment=self.COMPLETE_ON_FULFILLMENT,
            ),
            features=FeatureFlags(
                allow_edit=self.ALLOW_EDIT,
                allow_cancel=self.ALLOW_CANCEL,
                track_events=self.TRACK_EVENTS,
            ),
            hooks=hooks or OrderHooks(),
            operation_timeout=self.OPERATION_TIMEOUT,
        )


settings = Settings()
