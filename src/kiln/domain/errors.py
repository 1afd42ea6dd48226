"""Caller-facing error taxonomy and translation from store failures.

Repositories resolve ambiguous store failures here, at their boundary, so that
callers never need store-specific knowledge. In particular a caller without
visibility must not be able to tell "forbidden" from "absent".
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from kiln.domain.ports.store import (
    AccessDeniedError,
    AdmissionRejectedError,
    AlreadyExistsError,
    ObjectNotFoundError,
    StoreError,
)

if TYPE_CHECKING:
    from collections.abc import Mapping


class ApiError(Exception):
    """Base class for errors surfaced to API-level callers."""

    title: str = "UnknownError"

    def __init__(self, detail: str, *, cause: BaseException | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.cause = cause


class NotFoundError(ApiError):
    title = "NotFound"

    def __init__(
        self,
        resource_type: str,
        *,
        detail: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(detail or f"{resource_type} not found", cause=cause)
        self.resource_type = resource_type


class ForbiddenError(ApiError):
    title = "Forbidden"

    def __init__(self, resource_type: str, *, cause: BaseException | None = None) -> None:
        super().__init__(f"not authorized to access {resource_type}", cause=cause)
        self.resource_type = resource_type


class UnprocessableEntityError(ApiError):
    title = "UnprocessableEntity"


class UniquenessError(ApiError):
    title = "UniquenessError"


class AwaitTimeoutError(ApiError, TimeoutError):
    """The wait timed out; the underlying operation may still complete later."""

    title = "Timeout"


class StoreFailureError(ApiError):
    """Transient or otherwise unclassified store failure, wrapped with context."""

    title = "StoreFailure"


def from_store_error(error: StoreError, resource_type: str) -> ApiError:
    """Translate a store error into the caller-facing taxonomy."""

    if isinstance(error, ObjectNotFoundError):
        return NotFoundError(resource_type, cause=error)
    if isinstance(error, AccessDeniedError):
        return ForbiddenError(resource_type, cause=error)
    if isinstance(error, AdmissionRejectedError):
        return UnprocessableEntityError(error.message, cause=error)
    if isinstance(error, AlreadyExistsError):
        return UniquenessError(str(error), cause=error)
    return StoreFailureError(f"{resource_type}: {error}", cause=error)


def forbidden_as_not_found(error: ApiError) -> ApiError:
    if isinstance(error, ForbiddenError):
        return NotFoundError(error.resource_type, cause=error.cause or error)
    return error


def as_unprocessable_entity(
    error: ApiError,
    detail: str,
    *translate: type[ApiError],
) -> ApiError:
    """Replace ``error`` with an unprocessable-entity error when it is one of ``translate``."""

    if isinstance(error, translate):
        return UnprocessableEntityError(detail, cause=error)
    return error


def log_and_return(
    logger: logging.Logger,
    error: ApiError,
    message: str,
    context: Mapping[str, object] | None = None,
) -> ApiError:
    """Log a boundary failure once and hand the error back for raising."""

    details = " ".join(f"{key}={value}" for key, value in (context or {}).items())
    expected = isinstance(error, NotFoundError | UnprocessableEntityError)
    level = logging.INFO if expected else logging.ERROR
    logger.log(level, "%s: %s %s", message, error.detail, details)
    return error
