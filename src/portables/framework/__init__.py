"""
Portables Framework - the service contract and its registry.

This module provides:
- PortableService, the base class every category worker implements
- register_service / discover_services, the explicit service catalog
"""

from portables.framework.registry import (
    clear_registry,
    discover_services,
    list_service_types,
    load_entry_points,
    register_service,
    register_service_type,
)
from portables.framework.services import CheckpointCallback, PortableService

__all__ = [
    "PortableService",
    "CheckpointCallback",
    "register_service",
    "register_service_type",
    "list_service_types",
    "discover_services",
    "load_entry_points",
    "clear_registry",
]
