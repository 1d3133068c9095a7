"""Request-scoped access to the application's services."""
from fastapi import Request

from mediastream.services import MediaServices


def get_services(request: Request) -> MediaServices:
    """Return the service graph attached to the running application."""
    return request.app.state.services
