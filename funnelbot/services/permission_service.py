from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from funnelbot.logging_config import get_logger

logger = get_logger("permission_service")


class Domain(str, Enum):
    MEMBERS = "members"
    FOUNDATION = "fundacion"
    ALL = "all"


KNOWN_DOMAINS = {d.value for d in Domain}


@dataclass(frozen=True)
class PermissionSet:
    role: str
    domains: frozenset = field(default_factory=frozenset)

    @classmethod
    def from_values(cls, role: str, values: Iterable[str] | str | None) -> "PermissionSet":
        """Build a permission set from a list or a comma-separated string."""
        if values is None:
            items = []
        elif isinstance(values, str):
            items = values.split(",")
        else:
            items = [str(v) for v in values]

        domains = set()
        for item in items:
            name = item.strip().lower()
            if not name:
                continue
            if name not in KNOWN_DOMAINS:
                logger.warning(f"Ignoring unknown permission domain: {name}")
                continue
            domains.add(name)
        return cls(role=(role or "").strip(), domains=frozenset(domains))

    def as_list(self) -> list[str]:
        return sorted(self.domains)


def allows(permission_set: PermissionSet, domain: str) -> bool:
    """True if the active role may use the given catalog domain."""
    if not domain or not domain.strip():
        return False
    if Domain.ALL.value in permission_set.domains:
        return True
    return domain.strip().lower() in permission_set.domains
