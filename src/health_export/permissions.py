"""Read permissions for record types and the permission authority interface."""

import re
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

import structlog

from .registry import (
    DEFAULT_REGISTRY,
    HEART_RATE_TYPE_ID,
    STEPS_TYPE_ID,
    RecordTypeConfig,
    RecordTypeRegistry,
)

logger = structlog.get_logger(__name__)

READ_PERMISSION_PREFIX = "health.permission.READ_"


@runtime_checkable
class PermissionAuthority(Protocol):
    """Grants or withholds capabilities to read record types."""

    async def granted_permissions(self) -> set[str]:
        """Permissions currently granted to the application."""
        ...

    def request_permissions(self, permissions: set[str]) -> None:
        """Ask for permissions; the outcome is observed later by the caller."""
        ...


def _upper_snake(type_id: str) -> str:
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", type_id)
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return s2.upper()


def read_permission(config: RecordTypeConfig | str) -> str:
    """Permission id for reading a record type, e.g. ``health.permission.READ_HEART_RATE``."""
    type_id = config.type_id if isinstance(config, RecordTypeConfig) else config
    return READ_PERMISSION_PREFIX + _upper_snake(type_id)


def required_permissions(registry: RecordTypeRegistry = DEFAULT_REGISTRY) -> set[str]:
    """Read permissions for every registered record type."""
    return {read_permission(config) for config in registry.all_records}


def basic_permissions() -> set[str]:
    """Read permissions for steps and heart rate only."""
    return {read_permission(STEPS_TYPE_ID), read_permission(HEART_RATE_TYPE_ID)}


def missing_permissions(
    granted: Iterable[str], registry: RecordTypeRegistry = DEFAULT_REGISTRY
) -> set[str]:
    return required_permissions(registry) - set(granted)


async def has_all_permissions(
    authority: PermissionAuthority, registry: RecordTypeRegistry = DEFAULT_REGISTRY
) -> bool:
    """Check whether every registered type may be read."""
    missing = missing_permissions(await authority.granted_permissions(), registry)
    if missing:
        logger.debug("permissions_missing", count=len(missing), missing=sorted(missing))
    return not missing


def request_all_permissions(
    authority: PermissionAuthority, registry: RecordTypeRegistry = DEFAULT_REGISTRY
) -> None:
    permissions = required_permissions(registry)
    logger.info("permissions_requested", count=len(permissions))
    authority.request_permissions(permissions)


class StaticPermissionAuthority:
    """Permission authority backed by a fixed set.

    Args:
        granted: Granted permission ids; ``None`` grants everything.
    """

    def __init__(
        self,
        granted: Iterable[str] | None = None,
        registry: RecordTypeRegistry = DEFAULT_REGISTRY,
    ) -> None:
        self._granted = set(granted) if granted is not None else None
        self._registry = registry
        self.requested: list[set[str]] = []

    async def granted_permissions(self) -> set[str]:
        if self._granted is None:
            return required_permissions(self._registry)
        return set(self._granted)

    def request_permissions(self, permissions: set[str]) -> None:
        self.requested.append(set(permissions))
