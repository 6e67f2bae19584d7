from fastapi import Request

from .config import Settings, get_settings
from .modeller import EnergyModeller


def get_modeller(request: Request) -> EnergyModeller:
    """The EnergyModeller built by the application lifespan."""
    return request.app.state.modeller


__all__ = ["Settings", "get_modeller", "get_settings"]
