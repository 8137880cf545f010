"""
Casos de uso de consulta de listados sincronizados.
"""
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from listing_sync.application.dto.property_dto import (
    MediaDTO,
    OpenHouseDTO,
    PropertyDetailDTO,
    PropertyListResponseDTO,
    PropertySummaryDTO,
    RoomDTO,
)
from listing_sync.infrastructure.repositories.property_repository import (
    PropertyRepository,
    model_to_dict,
)
from listing_sync.shared.exceptions.domain import EntityNotFoundException


class PropertyUseCases:
    def __init__(self, db: AsyncSession):
        self.repository = PropertyRepository(db)

    async def list_properties(
        self,
        *,
        city: Optional[str] = None,
        property_type: Optional[str] = None,
        status: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> PropertyListResponseDTO:
        items, total = await self.repository.search(
            city=city,
            property_type=property_type,
            status=status,
            min_price=min_price,
            max_price=max_price,
            limit=limit,
            offset=offset,
        )
        return PropertyListResponseDTO(
            total=total,
            limit=limit,
            offset=offset,
            items=[PropertySummaryDTO.model_validate(p) for p in items],
        )

    async def get_property(self, listing_key: str) -> PropertyDetailDTO:
        """
        Retorna el listado con medios, ambientes y open houses.

        Raises:
            EntityNotFoundException: si el listado no está sincronizado
        """
        prop = await self.repository.get_by_key(listing_key)
        if prop is None:
            raise EntityNotFoundException("Property", listing_key)

        media = await self.repository.get_media(listing_key)
        rooms = await self.repository.get_rooms(listing_key)
        open_houses = await self.repository.get_open_houses(listing_key)
        return PropertyDetailDTO(
            ListingKey=prop.ListingKey,
            attributes=model_to_dict(prop),
            media=[MediaDTO.model_validate(m) for m in media],
            rooms=[RoomDTO.model_validate(r) for r in rooms],
            open_houses=[OpenHouseDTO.model_validate(o) for o in open_houses],
        )

    async def get_media(self, listing_key: str) -> List[MediaDTO]:
        if await self.repository.get_by_key(listing_key) is None:
            raise EntityNotFoundException("Property", listing_key)
        media = await self.repository.get_media(listing_key)
        return [MediaDTO.model_validate(m) for m in media]
