"""
Configuración de base de datos.

Importa todos los modelos para que se registren con Base
antes de crear las tablas.
"""
from listing_sync.infrastructure.database.models import (
    PropertyModel,
    MediaModel,
    PropertyRoomModel,
    OpenHouseModel,
    SyncCursorModel,
    SyncRunModel,
)
