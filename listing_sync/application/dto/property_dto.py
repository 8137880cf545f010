"""
DTOs de lectura de listados sincronizados.
"""
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PropertySummaryDTO(BaseModel):
    """Vista resumida de un listado (para grillas)."""

    ListingKey: str
    ListPrice: Optional[float] = None
    StandardStatus: Optional[str] = None
    PropertyType: Optional[str] = None
    PropertySubType: Optional[str] = None
    UnparsedAddress: Optional[str] = None
    City: Optional[str] = None
    StateOrProvince: Optional[str] = None
    PostalCode: Optional[str] = None
    BedroomsAboveGrade: Optional[int] = None
    BathroomsTotalInteger: Optional[int] = None
    ModificationTimestamp: Optional[datetime] = None

    class Config:
        from_attributes = True


class PropertyListResponseDTO(BaseModel):
    total: int
    limit: int
    offset: int
    items: List[PropertySummaryDTO]


class MediaDTO(BaseModel):
    MediaKey: str
    ResourceRecordKey: str
    MediaURL: Optional[str] = None
    MediaCategory: Optional[str] = None
    ImageSizeDescription: Optional[str] = None
    Order: Optional[int] = None
    PreferredPhotoYN: Optional[bool] = None
    MediaModificationTimestamp: Optional[datetime] = None

    class Config:
        from_attributes = True


class RoomDTO(BaseModel):
    RoomKey: str
    ListingKey: str
    RoomType: Optional[str] = None
    RoomLevel: Optional[str] = None
    RoomDescription: Optional[str] = None
    RoomLength: Optional[float] = None
    RoomWidth: Optional[float] = None
    RoomLengthWidthUnits: Optional[str] = None
    RoomFeatures: Optional[List[str]] = None
    Order: Optional[int] = None

    class Config:
        from_attributes = True


class OpenHouseDTO(BaseModel):
    OpenHouseKey: str
    ListingKey: str
    OpenHouseDate: Optional[date] = None
    OpenHouseStartTime: Optional[time] = None
    OpenHouseEndTime: Optional[time] = None
    OpenHouseStatus: Optional[str] = None
    OpenHouseType: Optional[str] = None
    OpenHouseRemarks: Optional[str] = None

    class Config:
        from_attributes = True


class PropertyDetailDTO(BaseModel):
    """Listado completo con sus hijos."""

    ListingKey: str
    attributes: Dict[str, Any]
    media: List[MediaDTO] = Field(default_factory=list)
    rooms: List[RoomDTO] = Field(default_factory=list)
    open_houses: List[OpenHouseDTO] = Field(default_factory=list)
