"""Postal address value object"""

from dataclasses import asdict, dataclass
from typing import Optional


@dataclass(frozen=True)
class Address:
    first_name: str
    last_name: str
    address1: str
    city: str
    postal_code: str
    country: str
    company: Optional[str] = None
    address2: Optional[str] = None
    state: Optional[str] = None
    phone: Optional[str] = None

    def to_dict(self) -> dict:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional['Address']:
        if not data:
            return None
        return cls(**data)
