"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


def not_found(code: str, message: str) -> DomainError:
    return DomainError(code=code, http_status=404, message=message)


def remote_write_failed(message: str, *, entity_id: str | None = None) -> DomainError:
    """Mutation was rolled back locally because the store rejected the write."""
    return DomainError(
        code="REMOTE_WRITE_FAILED",
        http_status=503,
        message=message,
        details={"id": entity_id} if entity_id else None,
    )
