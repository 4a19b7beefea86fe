"""
Document Sequence Service for Atomic Number Generation

- Company scoped sequences that restart every business day
- Atomic number generation with database-level locking
- Format: {PREFIX}-{COMPANY_CODE}-{YYYYMMDD}-{SEQUENCE}

USAGE:
    from app.services.document_sequence_service import DocumentSequenceService

    async def create_return(db: AsyncSession, company_id):
        service = DocumentSequenceService(db, company_id)
        return_number = await service.get_next_number("GR")
        # Returns: GR-AQUA-20260118-0001

SUPPORTED DOCUMENT TYPES:
    GR  - Goods Return
    MOV - Stock Movement
"""

import logging
import uuid
from datetime import datetime, date, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.company import Company
from app.models.document_sequence import DocumentSequence


logger = logging.getLogger(__name__)


# Document type metadata
DOCUMENT_METADATA = {
    "GR": {"name": "Goods Return", "padding": 4},
    "MOV": {"name": "Stock Movement", "padding": 5},
}


class DocumentSequenceError(Exception):
    """Raised when a document number cannot be generated."""
    pass


def business_today(now: Optional[datetime] = None) -> date:
    """Calendar day in the configured business timezone."""
    offset = timezone(timedelta(minutes=settings.BUSINESS_UTC_OFFSET_MINUTES))
    now = now or datetime.now(timezone.utc)
    return now.astimezone(offset).date()


class DocumentSequenceService:
    """
    Service for generating atomic document numbers.

    Uses database-level locking (SELECT FOR UPDATE) on the day's counter row
    so concurrent requests for the same company never share a number. The
    increment joins the caller's transaction: if the caller rolls back, the
    number is released with it.
    """

    def __init__(self, db: AsyncSession, company_id: uuid.UUID):
        self.db = db
        self.company_id = company_id
        self._company_code: Optional[str] = None

    async def get_company_code(self) -> str:
        """Short code of the company, falling back to the configured placeholder."""
        if self._company_code is None:
            result = await self.db.execute(
                select(Company.code).where(Company.id == self.company_id)
            )
            code = result.scalar_one_or_none()
            self._company_code = (code or settings.DEFAULT_COMPANY_CODE).upper()
        return self._company_code

    async def get_next_number(
        self,
        document_type: str,
        sequence_date: Optional[date] = None
    ) -> str:
        """
        Get next document number with atomic increment.

        Args:
            document_type: Document type code (GR, MOV)
            sequence_date: Business day. Defaults to today.

        Returns:
            Formatted document number, e.g., GR-AQUA-20260118-0001

        Raises:
            ValueError: If document_type is invalid
            DocumentSequenceError: If the counter cannot be read or written
        """
        doc_type = self._validate_type(document_type)
        sequence_date = sequence_date or business_today()

        try:
            sequence = await self._get_or_create_sequence(doc_type, sequence_date)
            doc_number = sequence.get_next_number()
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error generating {doc_type} number for company {self.company_id}: {e}")
            raise DocumentSequenceError(f"Failed to generate {DOCUMENT_METADATA[doc_type]['name']} number") from e

        return doc_number

    async def preview_next_number(
        self,
        document_type: str,
        sequence_date: Optional[date] = None
    ) -> str:
        """Preview what the next number would be without incrementing."""
        doc_type = self._validate_type(document_type)
        sequence_date = sequence_date or business_today()

        # Get sequence without locking
        result = await self.db.execute(
            select(DocumentSequence)
            .where(
                DocumentSequence.company_id == self.company_id,
                DocumentSequence.document_type == doc_type,
                DocumentSequence.sequence_date == sequence_date,
            )
        )
        sequence = result.scalar_one_or_none()

        if sequence:
            return sequence.preview_next_number()

        # No sequence exists yet - would be first number
        preview = DocumentSequence(
            document_type=doc_type,
            company_code=await self.get_company_code(),
            sequence_date=sequence_date,
            current_number=0,
            padding_length=DOCUMENT_METADATA[doc_type]["padding"],
            separator="-",
        )
        return preview.preview_next_number()

    async def get_current_number(
        self,
        document_type: str,
        sequence_date: Optional[date] = None
    ) -> int:
        """Current (last used) sequence number, 0 if none was issued."""
        doc_type = document_type.upper()
        sequence_date = sequence_date or business_today()

        result = await self.db.execute(
            select(DocumentSequence.current_number)
            .where(
                DocumentSequence.company_id == self.company_id,
                DocumentSequence.document_type == doc_type,
                DocumentSequence.sequence_date == sequence_date,
            )
        )
        current = result.scalar_one_or_none()
        return current or 0

    def _validate_type(self, document_type: str) -> str:
        doc_type = document_type.upper()
        if doc_type not in DOCUMENT_METADATA:
            valid_types = ", ".join(DOCUMENT_METADATA.keys())
            raise ValueError(f"Invalid document type '{doc_type}'. Valid types: {valid_types}")
        return doc_type

    async def _lock_sequence(self, document_type: str, sequence_date: date) -> Optional[DocumentSequence]:
        result = await self.db.execute(
            select(DocumentSequence)
            .where(
                DocumentSequence.company_id == self.company_id,
                DocumentSequence.document_type == document_type,
                DocumentSequence.sequence_date == sequence_date,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_or_create_sequence(
        self,
        document_type: str,
        sequence_date: date
    ) -> DocumentSequence:
        """
        Get existing sequence with row lock, or create new one.

        A concurrent request may open the same day's counter first; the
        unique constraint rejects our insert inside a savepoint and we lock
        the winner's row instead.
        """
        sequence = await self._lock_sequence(document_type, sequence_date)
        if sequence:
            return sequence

        metadata = DOCUMENT_METADATA[document_type]
        sequence = DocumentSequence(
            company_id=self.company_id,
            document_type=document_type,
            company_code=await self.get_company_code(),
            sequence_date=sequence_date,
            current_number=0,
            padding_length=metadata["padding"],
            separator="-",
        )
        try:
            async with self.db.begin_nested():
                self.db.add(sequence)
        except IntegrityError:
            logger.info(f"{document_type} sequence for {sequence_date} opened concurrently, reusing it")
        else:
            # Re-fetch with lock to ensure atomicity
            return await self._lock_sequence(document_type, sequence_date)

        sequence = await self._lock_sequence(document_type, sequence_date)
        if sequence is None:
            raise DocumentSequenceError(f"{metadata['name']} sequence for {sequence_date} could not be opened")
        return sequence
