"""Domain port definitions for adapters."""

from __future__ import annotations

from .authorization import AuthInfo, NamespacePermissions, NamespaceRetriever, UserClientFactory
from .provisioning import BrokerBindError, Cleaner, ServiceBroker
from .store import (
    AccessDeniedError,
    AdmissionRejectedError,
    AdmissionValidator,
    AlreadyExistsError,
    AnyObject,
    ControllerClient,
    ObjectClient,
    ObjectNotFoundError,
    ObjectReader,
    SpecWriter,
    StatusWriter,
    StoreError,
    StoreUnavailableError,
    Watcher,
    WatchEvent,
    WatchEventType,
)

__all__ = [
    "AccessDeniedError",
    "AdmissionRejectedError",
    "AdmissionValidator",
    "AlreadyExistsError",
    "AnyObject",
    "AuthInfo",
    "BrokerBindError",
    "Cleaner",
    "ControllerClient",
    "NamespacePermissions",
    "NamespaceRetriever",
    "ObjectClient",
    "ObjectNotFoundError",
    "ObjectReader",
    "ServiceBroker",
    "SpecWriter",
    "StatusWriter",
    "StoreError",
    "StoreUnavailableError",
    "UserClientFactory",
    "WatchEvent",
    "WatchEventType",
    "Watcher",
]
