"""
Mapeos feed RESO -> tablas destino, por entidad.

Este es el punto recomendado para controlar:
- qué columnas existen en la base (esquema declarado)
- cómo se transforma cada valor del feed

Mantener alineado con `infrastructure/database/models.py`.
"""

from __future__ import annotations

from listing_sync.shared.constants.sync_constants import FieldKind

from .types import FieldMapping


TEXT = FieldKind.SCALAR
MULTI = FieldKind.MULTI
INT = FieldKind.INTEGER
DEC = FieldKind.DECIMAL
BOOL = FieldKind.BOOLEAN
TS = FieldKind.TIMESTAMP
DT = FieldKind.DATE
TOD = FieldKind.TIME_OF_DAY


def _fields(kind: FieldKind, *names: str) -> list[FieldMapping]:
    return [FieldMapping(source_field=name, kind=kind) for name in names]


PROPERTY_MAPPINGS: list[FieldMapping] = [
    *_fields(TEXT, "ListingKey"),
    # Financieros
    *_fields(DEC, "ListPrice", "ClosePrice"),
    # Estado
    *_fields(TEXT, "MlsStatus", "ContractStatus", "StandardStatus", "TransactionType"),
    # Tipo de propiedad
    *_fields(TEXT, "PropertyType", "PropertySubType"),
    *_fields(MULTI, "ArchitecturalStyle"),
    # Dirección
    *_fields(
        TEXT,
        "UnparsedAddress", "StreetNumber", "StreetName", "StreetSuffix", "City",
        "StateOrProvince", "PostalCode", "CountyOrParish", "CityRegion", "UnitNumber",
    ),
    # Ambientes (pueden venir como "2.0")
    *_fields(
        INT,
        "KitchensAboveGrade", "BedroomsAboveGrade", "BedroomsBelowGrade",
        "BathroomsTotalInteger", "KitchensBelowGrade", "KitchensTotal",
    ),
    *_fields(BOOL, "DenFamilyRoomYN"),
    # Descripción
    *_fields(TEXT, "PublicRemarks", "PossessionDetails"),
    # Timestamps
    *_fields(
        TS,
        "PhotosChangeTimestamp", "MediaChangeTimestamp", "ModificationTimestamp",
        "SystemModificationTimestamp", "OriginalEntryTimestamp", "SoldConditionalEntryTimestamp",
        "SoldEntryTimestamp", "SuspendedEntryTimestamp", "TerminatedEntryTimestamp",
    ),
    # Fechas
    *_fields(
        DT,
        "CloseDate", "ConditionalExpiryDate", "PurchaseContractDate",
        "SuspendedDate", "TerminatedDate", "UnavailableDate",
    ),
    # Características
    *_fields(MULTI, "Cooling", "Sewer", "Basement"),
    *_fields(TEXT, "BasementEntrance"),
    *_fields(MULTI, "ExteriorFeatures", "InteriorFeatures", "PoolFeatures", "PropertyFeatures"),
    *_fields(TEXT, "HeatType"),
    *_fields(BOOL, "FireplaceYN"),
    *_fields(TEXT, "LivingAreaRange"),
    *_fields(BOOL, "WaterfrontYN"),
    *_fields(TEXT, "PossessionType"),
    # Estacionamiento
    *_fields(INT, "CoveredSpaces", "ParkingSpaces", "ParkingTotal"),
    # Asociación
    *_fields(MULTI, "AssociationAmenities"),
    *_fields(TEXT, "Locker", "BalconyType"),
    *_fields(MULTI, "PetsAllowed"),
    *_fields(DEC, "AssociationFee"),
    *_fields(MULTI, "AssociationFeeIncludes"),
    # Detalles
    *_fields(TEXT, "ApproximateAge"),
    *_fields(DEC, "AdditionalMonthlyFee", "TaxAnnualAmount"),
    *_fields(INT, "TaxYear"),
    # Lote
    *_fields(DEC, "LotDepth", "LotWidth"),
    *_fields(TEXT, "LotSizeUnits"),
    # Alquiler
    *_fields(TEXT, "Furnished"),
    *_fields(MULTI, "RentIncludes"),
]

# Resumen del ambiente representativo, derivado de PropertyRooms (o de campos planos)
ROOM_SUMMARY_COLUMNS: tuple[str, ...] = (
    "RoomType",
    "RoomLevel",
    "RoomDescription",
    "RoomLength",
    "RoomWidth",
    "RoomLengthWidthUnits",
    "RoomFeatures",
)

ROOM_FEATURE_FIELDS: tuple[str, ...] = ("RoomFeature1", "RoomFeature2", "RoomFeature3")


MEDIA_MAPPINGS: list[FieldMapping] = [
    *_fields(TEXT, "MediaKey", "ResourceRecordKey"),
    *_fields(TEXT, "MediaObjectID", "MediaURL", "MediaCategory", "MediaType", "MediaStatus"),
    *_fields(TEXT, "ImageOf", "ClassName", "ImageSizeDescription"),
    *_fields(INT, "Order"),
    *_fields(BOOL, "PreferredPhotoYN"),
    *_fields(TEXT, "ShortDescription", "ResourceName", "OriginatingSystemID"),
    *_fields(TS, "MediaModificationTimestamp", "ModificationTimestamp"),
]


ROOM_MAPPINGS: list[FieldMapping] = [
    *_fields(TEXT, "RoomKey", "ListingKey"),
    *_fields(TEXT, "RoomDescription"),
    *_fields(DEC, "RoomLength", "RoomWidth"),
    *_fields(TEXT, "RoomLengthWidthUnits", "RoomLevel", "RoomType"),
    *_fields(TEXT, *ROOM_FEATURE_FIELDS),
    *_fields(MULTI, "RoomFeatures"),
    *_fields(INT, "Order"),
    *_fields(TS, "ModificationTimestamp"),
]


OPEN_HOUSE_MAPPINGS: list[FieldMapping] = [
    *_fields(TEXT, "OpenHouseKey", "ListingKey"),
    *_fields(DT, "OpenHouseDate"),
    *_fields(TOD, "OpenHouseStartTime", "OpenHouseEndTime"),
    *_fields(TEXT, "OpenHouseStatus"),
    *_fields(TS, "OpenHouseDateTime"),
    *_fields(TEXT, "OpenHouseRemarks", "OpenHouseType"),
    *_fields(TS, "ModificationTimestamp"),
]
