"""Default-resolution policy for lookups that miss their table.

New notification types, categories and badges ship before every table knows
about them. A miss resolves here, in one place:

- an unknown notification type or category is delivered (fail open)
- an unknown badge is never considered earned
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import TypeVar

K = TypeVar("K")


class LookupKind(str, Enum):
    NOTIFICATION_CATEGORY = "notification_category"
    NOTIFICATION_TYPE = "notification_type"
    BADGE = "badge"


_DEFAULTS: dict[LookupKind, bool] = {
    LookupKind.NOTIFICATION_CATEGORY: True,
    LookupKind.NOTIFICATION_TYPE: True,
    LookupKind.BADGE: False,
}


def default_for(kind: LookupKind) -> bool:
    return _DEFAULTS[kind]


def resolve_flag(table: Mapping[K, object], key: K, kind: LookupKind) -> bool:
    """Look up a boolean flag, falling back to the policy default for ``kind``."""
    value = table.get(key)
    if value is None:
        return default_for(kind)
    return bool(value)
