"""Entity ID value objects"""

from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID, uuid4


@dataclass(frozen=True)
class OrderId:
    value: UUID

    def __post_init__(self):
        if not isinstance(self.value, UUID):
            raise ValueError("Order ID must be a valid UUID")

    @classmethod
    def generate(cls) -> 'OrderId':
        """Generate a new random UUID"""
        return cls(uuid4())

    @classmethod
    def from_str(cls, uuid_str: str) -> 'OrderId':
        """Create OrderId from string representation"""
        return cls(UUID(uuid_str))

    @classmethod
    def parse(cls, raw: Union['OrderId', UUID, str]) -> Optional['OrderId']:
        """Accept any caller representation; None when it cannot be an order id"""
        if isinstance(raw, OrderId):
            return raw
        if isinstance(raw, UUID):
            return cls(raw)
        try:
            return cls.from_str(str(raw))
        except (TypeError, ValueError):
            return None

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class EventId:
    value: UUID

    def __post_init__(self):
        if not isinstance(self.value, UUID):
            raise ValueError("Event ID must be a valid UUID")

    @classmethod
    def generate(cls) -> 'EventId':
        """Generate a new random UUID"""
        return cls(uuid4())

    @classmethod
    def from_str(cls, uuid_str: str) -> 'EventId':
        """Create EventId from string representation"""
        return cls(UUID(uuid_str))

    def __str__(self) -> str:
        return str(self.value)
