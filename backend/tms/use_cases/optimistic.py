"""Optimistic update with rollback on remote failure."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from ..schemas import MutableRecord
from ..services.workspace import Notice, Workspace
from ..store import StoreError

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=MutableRecord)


@dataclass(frozen=True)
class MutationResult(Generic[R]):
    ok: bool
    record: R
    notice: Notice | None = None


def apply_optimistic(
    workspace: Workspace,
    *,
    kind: str,
    record_id: str,
    change: Callable[[R], R],
    persist: Callable[[R, R], None],
    failure_message: str,
    success_message: str | Callable[[R], str] | None = None,
) -> MutationResult[R] | None:
    """Show ``change`` immediately, then write it; undo it if the write fails.

    Returns ``None`` when the record is not cached. On a store failure the
    cached record (and any open detail view of it) is restored to the exact
    original value and an error notice is published.
    """
    original = workspace.find(kind, record_id)
    if original is None:
        return None

    updated = change(original)
    workspace.replace(kind, updated)
    try:
        persist(original, updated)
    except StoreError as e:
        logger.error(f"Write of {kind}/{record_id} failed, rolling back: {e}", exc_info=True)
        workspace.replace(kind, original)
        notice = workspace.publish(failure_message, level="error")
        return MutationResult(ok=False, record=original, notice=notice)
    except Exception:
        workspace.replace(kind, original)
        raise

    notice = None
    if success_message is not None:
        message = success_message(updated) if callable(success_message) else success_message
        notice = workspace.publish(message, level="success")
    return MutationResult(ok=True, record=updated, notice=notice)
