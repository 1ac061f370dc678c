"""
Closed value sets stored as strings.

Every consumer branches over all members and ends with an explicit
unreachable error, so adding a member fails loudly instead of falling
through to a default.
"""

import enum

from sqlalchemy import Enum as SAEnum


class TicketTier(str, enum.Enum):
    EARLY_BIRD = "early_bird"
    SECOND_PHASE = "second_phase"
    LAST_PHASE = "last_phase"
    VIP = "vip"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class TicketStatus(str, enum.Enum):
    ACTIVE = "active"
    USED = "used"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not TicketStatus.ACTIVE


class ValidationChannel(str, enum.Enum):
    SCAN = "scan"
    MANUAL = "manual"
    API = "api"


class ValidationStatus(str, enum.Enum):
    VALID = "valid"
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


def string_enum(enum_cls, name: str) -> SAEnum:
    """VARCHAR + CHECK column holding the enum's values."""
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )
