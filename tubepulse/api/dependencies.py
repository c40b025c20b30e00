"""FastAPI dependency providers.

The container is created by the application factory and stored on
``app.state``; route handlers receive it (or parts of it) through these
functions.
"""

from fastapi import Request

from tubepulse.core.container import DependencyContainer
from tubepulse.core.request_queue import RequestQueue


def get_container(request: Request) -> DependencyContainer:
    """
    Get the application's dependency container.

    Raises:
        RuntimeError: If the application was built without one.
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError(
            "Container not set. Build the app with create_app()."
        )
    return container


def get_request_queue(request: Request) -> RequestQueue:
    """Get the shared upstream request queue."""
    return get_container(request).request_queue
