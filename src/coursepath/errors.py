"""Error taxonomy for catalog and pathway operations.

Every rejection raised by the services is a CatalogError subclass carrying a
user-presentable message and a stable ``code`` the outer layers map to exit
codes or transport status values.
"""

from __future__ import annotations


class CatalogError(Exception):
    """Base exception for catalog and pathway rejections."""

    code: str = "catalog_error"
    exit_code: int = 1

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(CatalogError):
    """Raised when a referenced course, pathway, domain or job role is absent."""

    code = "not_found"


class ConflictError(CatalogError):
    """Raised for duplicate names, titles or pathway edges."""

    code = "conflict"


class ForbiddenError(CatalogError):
    """Raised when the acting user may not modify an entity."""

    code = "forbidden"


class InvalidOperationError(CatalogError):
    """Raised when a mutation would break a pathway graph invariant."""

    code = "invalid_operation"


class PreconditionFailedError(CatalogError):
    """Raised when a course deletion needs cascade confirmation.

    Attributes:
        affected: Readable descriptions of the pathways blocking the deletion.
    """

    code = "precondition_failed"

    def __init__(self, message: str, affected: list[str] | None = None) -> None:
        super().__init__(message)
        self.affected = list(affected or [])
