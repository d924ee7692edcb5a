# -*- coding: utf-8 -*-
"""
Endpoint Registry

Maps a logical entity type to its remote resource and turns a queued
mutation into the HTTP request that applies it.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

from .errors import ConfigurationError
from .models import SyncOperation, SyncQueueItem


@dataclass(frozen=True)
class EndpointDescriptor:
    """Remote resource of one entity type"""
    key: str
    resource_path: str
    requires_id_on_mutate: bool = True


@dataclass(frozen=True)
class RemoteRequest:
    """HTTP request for a single queued mutation"""
    method: str
    path: str
    body: Optional[Dict[str, Any]] = None


DEFAULT_ENDPOINTS = {
    'panels': (EndpointDescriptor('panels', '/api/panels'), ()),
    'inspections': (EndpointDescriptor('inspections', '/api/inspections'), ()),
    'manufacturing_orders': (
        EndpointDescriptor('manufacturing_orders', '/api/manufacturing-orders'),
        ('manufacturingorders', 'manufacturing-orders'),
    ),
    'stations': (EndpointDescriptor('stations', '/api/stations'), ()),
}


class EndpointRegistry:
    """
    Entity type -> EndpointDescriptor lookup.

    Lookups are case-insensitive and aliases resolve to the same descriptor.
    """

    def __init__(self, with_defaults: bool = True):
        self._entries: Dict[str, EndpointDescriptor] = {}
        if with_defaults:
            for descriptor, aliases in DEFAULT_ENDPOINTS.values():
                self.register(descriptor, aliases)

    def register(self, descriptor: EndpointDescriptor, aliases: Iterable[str] = ()):
        for name in (descriptor.key, *aliases):
            self._entries[name.lower()] = descriptor

    def lookup(self, entity_type: str) -> Optional[EndpointDescriptor]:
        """Descriptor for entity_type, or None when unknown."""
        if not entity_type:
            return None
        return self._entries.get(entity_type.lower())

    def canonical_key(self, entity_type: str) -> str:
        descriptor = self.lookup(entity_type)
        return descriptor.key if descriptor else entity_type

    def build_request(self, operation: Any, entity_type: str,
                      payload: Mapping[str, Any]) -> RemoteRequest:
        """
        Select verb and path for a mutation.

        create -> POST base, update -> PUT base/{id}, delete -> DELETE base/{id}

        Raises:
            ConfigurationError: Unknown entity type or operation, or missing id
        """
        descriptor = self.lookup(entity_type)
        if descriptor is None:
            raise ConfigurationError(f"Unknown table: {entity_type}")

        try:
            operation = operation if isinstance(operation, SyncOperation) else SyncOperation(operation)
        except ValueError:
            raise ConfigurationError(f"Unknown operation: {operation}") from None

        base = descriptor.resource_path.rstrip('/')
        if operation is SyncOperation.CREATE:
            return RemoteRequest('POST', base, dict(payload))

        entity_id = payload.get('id')
        if descriptor.requires_id_on_mutate and entity_id in (None, ''):
            raise ConfigurationError(
                f"Missing id for {operation.value} on {descriptor.key}"
            )

        path = f"{base}/{entity_id}" if entity_id not in (None, '') else base
        if operation is SyncOperation.UPDATE:
            return RemoteRequest('PUT', path, dict(payload))
        return RemoteRequest('DELETE', path)

    def request_for(self, item: SyncQueueItem) -> RemoteRequest:
        return self.build_request(item.operation, item.entity_type, item.payload)
