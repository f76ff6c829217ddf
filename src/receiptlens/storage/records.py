"""Relational persistence of extraction records with SQLAlchemy.

A receipt, its items and its extraction metadata are written in one
transaction, so a failure while inserting items leaves no receipt row
behind.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    create_engine,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
    selectinload,
    sessionmaker,
)

from receiptlens.logging import get_logger
from receiptlens.models import (
    AdditionalTax,
    ExtractionMetadata,
    ExtractionRecord,
    ExtractionStatus,
    ImageQuality,
    ReceiptItem,
    TaxDetails,
)

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100


class Base(DeclarativeBase):
    pass


class ReceiptRow(Base):
    __tablename__ = "receipts"

    id: Mapped[int] = mapped_column(primary_key=True)
    extraction_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    vendor_name: Mapped[str] = mapped_column(String(255), default="")
    subtotal: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    tax: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), default=0.0)
    total: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    tax_rate: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tax_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tax_inclusive: Mapped[bool] = mapped_column(Boolean, default=False)
    additional_taxes: Mapped[list] = mapped_column(JSON, default=list)
    payment_method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    receipt_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    image_quality: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    extracted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    items: Mapped[list["ReceiptItemRow"]] = relationship(
        back_populates="receipt", cascade="all, delete-orphan", order_by="ReceiptItemRow.position"
    )
    extraction_metadata: Mapped["ExtractionMetadataRow | None"] = relationship(
        back_populates="receipt", cascade="all, delete-orphan"
    )


class ReceiptItemRow(Base):
    __tablename__ = "receipt_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    receipt_id: Mapped[int] = mapped_column(ForeignKey("receipts.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_cost: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    original_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    receipt: Mapped["ReceiptRow"] = relationship(back_populates="items")


class ExtractionMetadataRow(Base):
    __tablename__ = "extraction_metadata"

    id: Mapped[int] = mapped_column(primary_key=True)
    receipt_id: Mapped[int] = mapped_column(
        ForeignKey("receipts.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    processing_time_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    model_identifier: Mapped[str] = mapped_column(String(100), nullable=False)
    warnings: Mapped[list] = mapped_column(JSON, default=list)

    receipt: Mapped["ReceiptRow"] = relationship(back_populates="extraction_metadata")


def _to_row(record: ExtractionRecord) -> ReceiptRow:
    row = ReceiptRow(
        extraction_id=record.extraction_id,
        date=record.date,
        currency=record.currency,
        vendor_name=record.vendor_name,
        subtotal=record.subtotal,
        tax=record.tax,
        total=record.total,
        tax_rate=record.tax_details.tax_rate,
        tax_type=record.tax_details.tax_type,
        tax_inclusive=record.tax_details.tax_inclusive,
        additional_taxes=[t.model_dump() for t in record.tax_details.additional_taxes],
        payment_method=record.payment_method,
        receipt_number=record.receipt_number,
        confidence_score=record.confidence_score,
        image_quality=record.image_quality.model_dump() if record.image_quality else None,
        image_url=record.image_url,
        status=record.status.value,
        extracted_at=record.extracted_at,
    )
    row.items = [
        ReceiptItemRow(
            position=position,
            item_name=item.item_name,
            item_cost=item.item_cost,
            quantity=item.quantity,
            original_name=item.original_name,
        )
        for position, item in enumerate(record.receipt_items)
    ]
    if record.extraction_metadata is not None:
        row.extraction_metadata = ExtractionMetadataRow(
            processing_time_ms=record.extraction_metadata.processing_time_ms,
            model_identifier=record.extraction_metadata.model_identifier,
            warnings=list(record.extraction_metadata.warnings),
        )
    return row


def _from_row(row: ReceiptRow) -> ExtractionRecord:
    extracted_at = row.extracted_at
    if extracted_at.tzinfo is None:
        # SQLite drops the offset; values are always written in UTC
        extracted_at = extracted_at.replace(tzinfo=UTC)

    metadata = None
    if row.extraction_metadata is not None:
        metadata = ExtractionMetadata(
            processing_time_ms=row.extraction_metadata.processing_time_ms,
            model_identifier=row.extraction_metadata.model_identifier,
            warnings=row.extraction_metadata.warnings or [],
        )

    return ExtractionRecord(
        status=ExtractionStatus(row.status),
        extraction_id=row.extraction_id,
        date=row.date,
        currency=row.currency,
        vendor_name=row.vendor_name,
        receipt_items=[
            ReceiptItem(
                item_name=item.item_name,
                item_cost=item.item_cost,
                quantity=item.quantity,
                original_name=item.original_name,
            )
            for item in row.items
        ],
        subtotal=row.subtotal,
        tax=row.tax,
        tax_details=TaxDetails(
            tax_rate=row.tax_rate,
            tax_type=row.tax_type,
            tax_inclusive=row.tax_inclusive,
            additional_taxes=[AdditionalTax(**t) for t in row.additional_taxes or []],
        ),
        total=row.total,
        payment_method=row.payment_method,
        receipt_number=row.receipt_number,
        confidence_score=row.confidence_score,
        image_quality=ImageQuality(**row.image_quality) if row.image_quality else None,
        image_url=row.image_url,
        extracted_at=extracted_at,
        extraction_metadata=metadata,
    )


def _connect_args(database_url: str) -> dict[str, bool]:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


class SqlRecordStore:
    """Record store backed by any SQLAlchemy-supported database."""

    def __init__(
        self, database_url: str = "sqlite:///./receipts.db", engine: Engine | None = None
    ) -> None:
        self.engine = engine or create_engine(
            database_url, connect_args=_connect_args(database_url)
        )
        self._sessions = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    def save(self, record: ExtractionRecord) -> str:
        """Insert a record with its items and metadata in one transaction.

        Returns:
            The saved record's extraction_id

        Raises:
            sqlalchemy.exc.SQLAlchemyError: On any database failure
                (including a duplicate extraction_id); nothing is written
        """
        logger.info(f"Saving receipt data for extraction ID: {record.extraction_id}")
        with self._sessions.begin() as session:
            session.add(_to_row(record))
        logger.info(f"Receipt saved successfully: {record.extraction_id}")
        return record.extraction_id

    def get_by_extraction_id(self, extraction_id: str) -> ExtractionRecord | None:
        stmt = (
            select(ReceiptRow)
            .where(ReceiptRow.extraction_id == extraction_id)
            .options(selectinload(ReceiptRow.items), selectinload(ReceiptRow.extraction_metadata))
        )
        with self._sessions() as session:
            row = session.scalars(stmt).first()
            return _from_row(row) if row is not None else None

    def list_page(self, limit: int = 50, offset: int = 0) -> list[ExtractionRecord]:
        """Return a page of records, newest first.

        Raises:
            ValueError: If limit is outside 1..100 or offset is negative
        """
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValueError("offset must be >= 0")

        stmt = (
            select(ReceiptRow)
            .order_by(ReceiptRow.created_at.desc(), ReceiptRow.id.desc())
            .limit(limit)
            .offset(offset)
            .options(selectinload(ReceiptRow.items), selectinload(ReceiptRow.extraction_metadata))
        )
        with self._sessions() as session:
            return [_from_row(row) for row in session.scalars(stmt)]

    def ping(self) -> bool:
        """Check that the receipts table answers a trivial query."""
        with self._sessions() as session:
            session.execute(select(ReceiptRow.id).limit(1))
        return True
