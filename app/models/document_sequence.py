"""
Document Sequence Model for Atomic Number Generation

• Company scoped, daily sequences (reset every business day)
• Atomic number generation with database-level locking
• Format: {PREFIX}-{COMPANY_CODE}-{YYYYMMDD}-{SEQUENCE}

DOCUMENT FORMATS:
━━━━━━━━━━━━━━━━
• GR:  GR-AQUA-20260118-0001   (Goods Return)
• MOV: MOV-AQUA-20260118-00001 (Stock Movement)
"""

import uuid
from datetime import datetime, date, timezone

from sqlalchemy import String, Integer, DateTime, Date, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class DocumentSequence(Base):
    """
    Per-company, per-day counter for document numbers.

    Example:
        document_type = "GR"
        company_code = "AQUA"
        sequence_date = 2026-01-18
        current_number = 41
        → Next number: GR-AQUA-20260118-0042
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint(
            "company_id", "document_type", "sequence_date",
            name="uq_document_sequence_company_type_date"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id"),
        nullable=False,
        index=True
    )

    # Document Identification
    document_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="GR, MOV"
    )

    # Company code captured when the day's counter was opened
    company_code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="COMP"
    )

    # Business day the counter belongs to
    sequence_date: Mapped[date] = mapped_column(
        Date,
        nullable=False
    )

    # Sequence Counter
    current_number: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last used sequence number"
    )

    # Formatting
    padding_length: Mapped[int] = mapped_column(
        Integer,
        default=4,
        nullable=False,
        comment="Zero padding for sequence (4 = 0001)"
    )
    separator: Mapped[str] = mapped_column(
        String(5),
        default="-",
        nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def format_number(self, number: int) -> str:
        seq = str(number).zfill(self.padding_length)
        sep = self.separator
        return f"{self.document_type}{sep}{self.company_code}{sep}{self.sequence_date:%Y%m%d}{sep}{seq}"

    def get_next_number(self) -> str:
        """
        Generate next document number.

        NOTE: This method increments current_number but does NOT
        commit to database. The caller must handle the transaction.
        """
        self.current_number += 1
        return self.format_number(self.current_number)

    def preview_next_number(self) -> str:
        """Preview next number without incrementing."""
        return self.format_number(self.current_number + 1)

    def __repr__(self) -> str:
        return f"<DocumentSequence({self.document_type}/{self.sequence_date}: {self.current_number})>"
