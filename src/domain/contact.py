"""Call / SMS affordances for the assigned driver."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .entities import DriverAssignment


@dataclass(frozen=True)
class DriverContact:
    phone: Optional[str] = None

    @classmethod
    def for_driver(cls, driver: Optional[DriverAssignment]) -> "DriverContact":
        return cls(phone=driver.phone if driver else None)

    @property
    def number(self) -> Optional[str]:
        if not self.phone:
            return None
        digits = re.sub(r"\D", "", self.phone)
        return f"+{digits}" if digits else None

    @property
    def available(self) -> bool:
        return self.number is not None

    def call_uri(self) -> Optional[str]:
        return f"tel:{self.number}" if self.available else None

    def sms_uri(self) -> Optional[str]:
        return f"sms:{self.number}" if self.available else None
