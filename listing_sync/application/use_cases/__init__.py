"""
Casos de uso de la capa de aplicacion.
"""
from .sync_use_cases import SyncUseCases
from .property_use_cases import PropertyUseCases

__all__ = ["SyncUseCases", "PropertyUseCases"]
