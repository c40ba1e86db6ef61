from fastapi import Request

from marketdaily.services.container import Services


def get_services(request: Request) -> Services:
    """Service graph built by the application lifespan."""
    return request.app.state.services
