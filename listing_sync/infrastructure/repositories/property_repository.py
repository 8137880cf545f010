"""
Repositorio de lectura de listados.
Consultas para la API (listado paginado, detalle, medios).
"""
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from listing_sync.infrastructure.database.models import (
    MediaModel,
    OpenHouseModel,
    PropertyModel,
    PropertyRoomModel,
)


def model_to_dict(model) -> Dict[str, Any]:
    """Convierte una fila ORM a dict usando los nombres de columna."""
    return {column.key: getattr(model, column.key) for column in model.__table__.columns}


class PropertyRepository:
    """Repositorio para consultar listados sincronizados."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def search(
        self,
        *,
        city: Optional[str] = None,
        property_type: Optional[str] = None,
        status: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[PropertyModel], int]:
        """
        Busca listados con filtros opcionales.

        Returns:
            (pagina de listados, total que cumple los filtros)
        """
        conditions = []
        if city:
            conditions.append(func.lower(PropertyModel.City) == city.lower())
        if property_type:
            conditions.append(PropertyModel.PropertyType == property_type)
        if status:
            conditions.append(PropertyModel.StandardStatus == status)
        if min_price is not None:
            conditions.append(PropertyModel.ListPrice >= min_price)
        if max_price is not None:
            conditions.append(PropertyModel.ListPrice <= max_price)

        total_result = await self.db.execute(
            select(func.count()).select_from(PropertyModel).where(*conditions)
        )
        total = total_result.scalar_one()

        result = await self.db.execute(
            select(PropertyModel)
            .where(*conditions)
            .order_by(PropertyModel.ModificationTimestamp.desc(), PropertyModel.ListingKey)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    async def get_by_key(self, listing_key: str) -> Optional[PropertyModel]:
        result = await self.db.execute(
            select(PropertyModel).where(PropertyModel.ListingKey == listing_key)
        )
        return result.scalars().first()

    async def get_media(self, listing_key: str) -> List[MediaModel]:
        result = await self.db.execute(
            select(MediaModel)
            .where(MediaModel.ResourceRecordKey == listing_key)
            .order_by(MediaModel.Order, MediaModel.MediaKey)
        )
        return list(result.scalars().all())

    async def get_rooms(self, listing_key: str) -> List[PropertyRoomModel]:
        result = await self.db.execute(
            select(PropertyRoomModel)
            .where(PropertyRoomModel.ListingKey == listing_key)
            .order_by(PropertyRoomModel.Order, PropertyRoomModel.RoomKey)
        )
        return list(result.scalars().all())

    async def get_open_houses(self, listing_key: str) -> List[OpenHouseModel]:
        result = await self.db.execute(
            select(OpenHouseModel)
            .where(OpenHouseModel.ListingKey == listing_key)
            .order_by(OpenHouseModel.OpenHouseDate, OpenHouseModel.OpenHouseKey)
        )
        return list(result.scalars().all())
