"""Access to the application-wide lifecycle manager."""

from fastapi import Request

from token_vault.credentials.lifecycle import TokenLifecycleManager
from token_vault.platform.errors import ServiceUnavailableError


def get_lifecycle_manager(request: Request) -> TokenLifecycleManager:
    """Return the manager created at start-up."""
    manager = getattr(request.app.state, "lifecycle_manager", None)
    if manager is None:
        raise ServiceUnavailableError("Token service is not ready")
    return manager
