"""FastAPI dependencies for accessing app state."""

from fastapi import Request

from scim_mirror.directory.scim_client import ScimClient
from scim_mirror.ias_auth.token_manager import TokenManager
from scim_mirror.settings import Settings
from scim_mirror.sync.notifier import ChangeNotifier
from scim_mirror.sync.orchestrator import SyncOrchestrator


def get_settings(request: Request) -> Settings:
    """
    Get application settings from request state.

    Parameters
    ----------
    request : Request
        FastAPI request object

    Returns
    -------
    Settings
        Application settings instance
    """
    return request.app.state.settings


def get_token_manager(request: Request) -> TokenManager:
    """
    Get token manager from request state.

    The token manager handles cached access tokens for the directory SCIM API.
    """
    return request.app.state.token_manager


def get_scim_client(request: Request) -> ScimClient:
    return request.app.state.scim_client


def get_store(request: Request):
    """Mirror store (PostgresMirrorStore in production)."""
    return request.app.state.store


def get_notifier(request: Request) -> ChangeNotifier:
    return request.app.state.notifier


def get_orchestrator(request: Request) -> SyncOrchestrator:
    return request.app.state.orchestrator
