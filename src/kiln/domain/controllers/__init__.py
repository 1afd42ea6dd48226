"""Reconciliation controllers and their dispatch."""

from __future__ import annotations

from .build_cleaner import BuildCleaner
from .build_delegates import BuildDelegate, BuildWorkloadDelegate, DockerBuildDelegate
from .builds import BuildReconciler, BuildValidationError, validate_lifecycle_types
from .engine import DONE, REQUEUE, PatchingReconciler, Result, RetryableError, WatchMapping
from .manager import ControllerManager
from .service_bindings import (
    BindingDelegate,
    ManagedBindingDelegate,
    ServiceBindingReconciler,
    UserProvidedBindingDelegate,
)
from .webhooks import AppNameUniquenessValidator, ServiceBindingUniquenessValidator

__all__ = [
    "DONE",
    "REQUEUE",
    "AppNameUniquenessValidator",
    "BindingDelegate",
    "BuildCleaner",
    "BuildDelegate",
    "BuildReconciler",
    "BuildValidationError",
    "BuildWorkloadDelegate",
    "ControllerManager",
    "DockerBuildDelegate",
    "ManagedBindingDelegate",
    "PatchingReconciler",
    "Result",
    "RetryableError",
    "ServiceBindingReconciler",
    "ServiceBindingUniquenessValidator",
    "UserProvidedBindingDelegate",
    "WatchMapping",
    "validate_lifecycle_types",
]
