"""Request-scoped access to the application's store, workspace and notifier."""
from fastapi import Request

from .services.notifier import Notifier
from .services.workspace import Workspace
from .store import DocumentStore


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_workspace(request: Request) -> Workspace:
    return request.app.state.workspace


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier
