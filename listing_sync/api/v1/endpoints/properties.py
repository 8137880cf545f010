"""
Endpoints de consulta de listados sincronizados.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from listing_sync.application.dto.property_dto import MediaDTO, PropertyDetailDTO, PropertyListResponseDTO
from listing_sync.application.use_cases.property_use_cases import PropertyUseCases
from listing_sync.api.v1.dependencies.engine_deps import get_property_use_cases
from listing_sync.shared.exceptions.domain import ValidationException


router = APIRouter(prefix="/properties", tags=["Properties"])


@router.get(
    "",
    response_model=PropertyListResponseDTO,
    summary="Listar listados sincronizados"
)
async def list_properties(
    city: Optional[str] = Query(default=None),
    property_type: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None, description="StandardStatus, ej: Active"),
    min_price: Optional[float] = Query(default=None, ge=0),
    max_price: Optional[float] = Query(default=None, ge=0),
    limit: int = Query(default=20, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    use_cases: PropertyUseCases = Depends(get_property_use_cases),
) -> PropertyListResponseDTO:
    if min_price is not None and max_price is not None and min_price > max_price:
        raise ValidationException("min_price no puede ser mayor que max_price", field="min_price")
    return await use_cases.list_properties(
        city=city,
        property_type=property_type,
        status=status,
        min_price=min_price,
        max_price=max_price,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{listing_key}",
    response_model=PropertyDetailDTO,
    summary="Obtener un listado con medios, ambientes y open houses"
)
async def get_property(
    listing_key: str,
    use_cases: PropertyUseCases = Depends(get_property_use_cases),
) -> PropertyDetailDTO:
    return await use_cases.get_property(listing_key)


@router.get(
    "/{listing_key}/media",
    response_model=List[MediaDTO],
    summary="Obtener los medios de un listado"
)
async def get_property_media(
    listing_key: str,
    use_cases: PropertyUseCases = Depends(get_property_use_cases),
) -> List[MediaDTO]:
    return await use_cases.get_media(listing_key)
