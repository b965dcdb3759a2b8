"""Service registry for registering and discovering portable services.

Manifesto:
    The engine must run "every service implementing the contract" without
    hard-coding them and without scanning modules for subclasses at
    runtime. Service types register themselves explicitly at import time
    (or through the ``portables.services`` entry point group); discovery
    instantiates each registered type for one job run.

    One broken service must never hide the others: a type whose
    constructor raises is logged and skipped.

Tags:
    portables, framework, registry, service-discovery, plugins
"""

from collections.abc import Iterator
from importlib.metadata import entry_points
from typing import TYPE_CHECKING

from portables.core.errors import ServiceRegistrationError
from portables.core.logging import get_logger

if TYPE_CHECKING:
    from portables.framework.services import PortableService

logger = get_logger(__name__)

ENTRY_POINT_GROUP = "portables.services"

# Global service catalog: casefolded category -> service type
_registry: dict[str, type["PortableService"]] = {}


def register_service(cls: type["PortableService"]) -> type["PortableService"]:
    """Decorator to register a portable service class under its category."""
    register_service_type(cls)
    return cls


def register_service_type(cls: type["PortableService"]) -> None:
    """Register *cls* in the catalog.

    Raises:
        ServiceRegistrationError: Missing category or a category (compared
            case-insensitively) that is already registered.
    """
    category = getattr(cls, "category", "")
    if not category:
        raise ServiceRegistrationError(f"Service '{cls.__name__}' does not declare a category")
    key = category.casefold()
    if key in _registry and _registry[key] is not cls:
        raise ServiceRegistrationError(
            f"Category '{category}' is already registered by {_registry[key].__name__}"
        )
    _registry[key] = cls
    logger.debug(
        "registry.service_registered",
        category=category,
        parent=getattr(cls, "parent_category", ""),
        priority=getattr(cls, "priority", 0),
        cls=cls.__name__,
    )


def list_service_types() -> list[type["PortableService"]]:
    """List registered service types in registration order."""
    return list(_registry.values())


def discover_services() -> Iterator["PortableService"]:
    """Instantiate every registered service type, lazily.

    Construction failures are logged and the faulty type is skipped.
    No ordering is guaranteed beyond registration order.
    """
    for cls in list_service_types():
        try:
            service = cls()
        except Exception as e:
            logger.error(
                "registry.service_skipped",
                cls=f"{cls.__module__}.{cls.__qualname__}",
                error=str(e),
                error_type=type(e).__name__,
            )
            continue
        yield service


def load_entry_points(group: str = ENTRY_POINT_GROUP) -> int:
    """Import plugin modules advertised under *group*.

    Each entry point may name a module (its services register on import)
    or a service class (registered directly). Broken plugins are logged
    and skipped.

    Returns:
        Number of entry points loaded successfully.
    """
    loaded = 0
    for ep in entry_points(group=group):
        try:
            target = ep.load()
            if isinstance(target, type):
                register_service_type(target)
        except Exception as e:
            logger.error("registry.entry_point_failed", entry_point=ep.name, error=str(e))
            continue
        loaded += 1
    logger.debug("registry.entry_points_loaded", group=group, loaded=loaded, registered=len(_registry))
    return loaded


def clear_registry() -> None:
    """Clear registry (for testing)."""
    _registry.clear()
