"""
Modelos de base de datos (ORM).

Las tablas de listados usan los nombres de campo RESO tal cual (CamelCase,
identificadores con comillas en PostgreSQL). Las columnas multi-valor son
TEXT[] en PostgreSQL y JSON en SQLite (tests).
"""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.sql import func

from listing_sync.infrastructure.database.session import Base


TextArray = ARRAY(Text).with_variant(JSON(), "sqlite")
DecimalNumber = Numeric(asdecimal=False).with_variant(Float(), "sqlite")


class PropertyModel(Base):
    """Listado (recurso Property del feed)."""

    __tablename__ = "Property"

    ListingKey = Column(Text, primary_key=True)

    ListPrice = Column(DecimalNumber)
    ClosePrice = Column(DecimalNumber)

    MlsStatus = Column(Text)
    ContractStatus = Column(Text)
    StandardStatus = Column(Text, index=True)
    TransactionType = Column(Text)

    PropertyType = Column(Text, index=True)
    PropertySubType = Column(Text)
    ArchitecturalStyle = Column(TextArray)

    UnparsedAddress = Column(Text)
    StreetNumber = Column(Text)
    StreetName = Column(Text)
    StreetSuffix = Column(Text)
    City = Column(Text, index=True)
    StateOrProvince = Column(Text)
    PostalCode = Column(Text)
    CountyOrParish = Column(Text)
    CityRegion = Column(Text)
    UnitNumber = Column(Text)

    KitchensAboveGrade = Column(Integer)
    BedroomsAboveGrade = Column(Integer)
    BedroomsBelowGrade = Column(Integer)
    BathroomsTotalInteger = Column(Integer)
    KitchensBelowGrade = Column(Integer)
    KitchensTotal = Column(Integer)
    DenFamilyRoomYN = Column(Boolean)

    PublicRemarks = Column(Text)
    PossessionDetails = Column(Text)

    PhotosChangeTimestamp = Column(DateTime(timezone=True))
    MediaChangeTimestamp = Column(DateTime(timezone=True))
    ModificationTimestamp = Column(DateTime(timezone=True), index=True)
    SystemModificationTimestamp = Column(DateTime(timezone=True))
    OriginalEntryTimestamp = Column(DateTime(timezone=True))
    SoldConditionalEntryTimestamp = Column(DateTime(timezone=True))
    SoldEntryTimestamp = Column(DateTime(timezone=True))
    SuspendedEntryTimestamp = Column(DateTime(timezone=True))
    TerminatedEntryTimestamp = Column(DateTime(timezone=True))
    CreatedAt = Column(DateTime(timezone=True), server_default=func.now())
    UpdatedAt = Column(DateTime(timezone=True), server_default=func.now())

    CloseDate = Column(Date)
    ConditionalExpiryDate = Column(Date)
    PurchaseContractDate = Column(Date)
    SuspendedDate = Column(Date)
    TerminatedDate = Column(Date)
    UnavailableDate = Column(Date)

    Cooling = Column(TextArray)
    Sewer = Column(TextArray)
    Basement = Column(TextArray)
    BasementEntrance = Column(Text)
    ExteriorFeatures = Column(TextArray)
    InteriorFeatures = Column(TextArray)
    PoolFeatures = Column(TextArray)
    PropertyFeatures = Column(TextArray)

    HeatType = Column(Text)
    FireplaceYN = Column(Boolean)
    LivingAreaRange = Column(Text)
    WaterfrontYN = Column(Boolean)
    PossessionType = Column(Text)

    CoveredSpaces = Column(Integer)
    ParkingSpaces = Column(Integer)
    ParkingTotal = Column(Integer)

    # Resumen del ambiente representativo
    RoomType = Column(Text)
    RoomLevel = Column(Text)
    RoomDescription = Column(Text)
    RoomLength = Column(DecimalNumber)
    RoomWidth = Column(DecimalNumber)
    RoomLengthWidthUnits = Column(Text)
    RoomFeatures = Column(TextArray)

    AssociationAmenities = Column(TextArray)
    Locker = Column(Text)
    BalconyType = Column(Text)
    PetsAllowed = Column(TextArray)
    AssociationFee = Column(DecimalNumber)
    AssociationFeeIncludes = Column(TextArray)

    ApproximateAge = Column(Text)
    AdditionalMonthlyFee = Column(DecimalNumber)
    TaxAnnualAmount = Column(DecimalNumber)
    TaxYear = Column(Integer)

    LotDepth = Column(DecimalNumber)
    LotWidth = Column(DecimalNumber)
    LotSizeUnits = Column(Text)

    Furnished = Column(Text)
    RentIncludes = Column(TextArray)

    def __repr__(self):
        return f"<Property(ListingKey={self.ListingKey}, City={self.City})>"


class MediaModel(Base):
    """Foto/medio de un listado."""

    __tablename__ = "Media"

    MediaKey = Column(Text, primary_key=True)
    ResourceRecordKey = Column(Text, ForeignKey("Property.ListingKey"), nullable=False, index=True)

    MediaObjectID = Column(Text)
    MediaURL = Column(Text)
    MediaCategory = Column(Text)
    MediaType = Column(Text)
    MediaStatus = Column(Text)

    ImageOf = Column(Text)
    ClassName = Column(Text)
    ImageSizeDescription = Column(Text)
    Order = Column(Integer)
    PreferredPhotoYN = Column(Boolean)
    ShortDescription = Column(Text)
    ResourceName = Column(Text)
    OriginatingSystemID = Column(Text)

    MediaModificationTimestamp = Column(DateTime(timezone=True), index=True)
    ModificationTimestamp = Column(DateTime(timezone=True))
    CreatedAt = Column(DateTime(timezone=True), server_default=func.now())
    UpdatedAt = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Media(MediaKey={self.MediaKey}, ResourceRecordKey={self.ResourceRecordKey})>"


class PropertyRoomModel(Base):
    """Ambiente de un listado."""

    __tablename__ = "PropertyRooms"

    RoomKey = Column(Text, primary_key=True)
    ListingKey = Column(Text, ForeignKey("Property.ListingKey"), nullable=False, index=True)

    RoomDescription = Column(Text)
    RoomLength = Column(DecimalNumber)
    RoomWidth = Column(DecimalNumber)
    RoomLengthWidthUnits = Column(Text)
    RoomLevel = Column(Text)
    RoomType = Column(Text)
    RoomFeature1 = Column(Text)
    RoomFeature2 = Column(Text)
    RoomFeature3 = Column(Text)
    RoomFeatures = Column(TextArray)
    Order = Column(Integer)

    ModificationTimestamp = Column(DateTime(timezone=True))
    CreatedAt = Column(DateTime(timezone=True), server_default=func.now())
    UpdatedAt = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<PropertyRoom(RoomKey={self.RoomKey}, ListingKey={self.ListingKey})>"


class OpenHouseModel(Base):
    """Open house de un listado."""

    __tablename__ = "OpenHouse"

    OpenHouseKey = Column(Text, primary_key=True)
    ListingKey = Column(Text, ForeignKey("Property.ListingKey"), nullable=False, index=True)

    OpenHouseDate = Column(Date)
    OpenHouseStartTime = Column(Time)
    OpenHouseEndTime = Column(Time)
    OpenHouseStatus = Column(Text)
    OpenHouseDateTime = Column(DateTime(timezone=True))
    OpenHouseRemarks = Column(Text)
    OpenHouseType = Column(Text)

    ModificationTimestamp = Column(DateTime(timezone=True))
    CreatedAt = Column(DateTime(timezone=True), server_default=func.now())
    UpdatedAt = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<OpenHouse(OpenHouseKey={self.OpenHouseKey}, ListingKey={self.ListingKey})>"


class SyncCursorModel(Base):
    """Cursor incremental por entidad: (last_timestamp, last_key)."""

    __tablename__ = "sync_cursors"

    entity_type = Column(String(50), primary_key=True)
    last_timestamp = Column(DateTime(timezone=True), nullable=False)
    last_key = Column(Text, nullable=False, default="")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<SyncCursor(entity_type={self.entity_type}, last_timestamp={self.last_timestamp})>"


class SyncRunModel(Base):
    """Bitácora de corridas de sincronización."""

    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(36), nullable=False, unique=True, index=True)
    mode = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, index=True)
    entities = Column(JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False, index=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Float, nullable=True)
    total_processed = Column(Integer, default=0)
    total_successful = Column(Integer, default=0)
    total_failed = Column(Integer, default=0)
    error_count = Column(Integer, default=0)
    last_error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<SyncRun(run_id={self.run_id}, status={self.status})>"
