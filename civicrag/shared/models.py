"""Stored domain types: documents, chunks and their metadata."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class CivicBaseModel(BaseModel):
    model_config = ConfigDict(
        protected_namespaces=(),
        arbitrary_types_allowed=True,
    )


class FrozenModel(CivicBaseModel):
    model_config = ConfigDict(
        protected_namespaces=(),
        arbitrary_types_allowed=True,
        frozen=True,
    )


class DocumentType(str, Enum):
    ZONING_BYLAWS = "zoning_bylaws"
    GENERAL_BYLAWS = "general_bylaws"
    BUILDING_PERMITS = "building_permits"
    FEE_SCHEDULES = "fee_schedules"
    BUDGET = "budget"
    BOARD_OF_HEALTH = "board_of_health"
    PUBLIC_WORKS = "public_works"
    MEETING_MINUTES = "meeting_minutes"
    PLANNING_BOARD = "planning_board"
    GENERAL = "general"


class ChunkType(str, Enum):
    REGULATION = "regulation"
    TABLE = "table"
    PROCEDURE_STEP = "procedure_step"
    MEETING_ITEM = "meeting_item"
    FINANCIAL_DATA = "financial_data"
    INFORMATIONAL = "informational"


class Document(FrozenModel):
    """A source document; the unit of re-ingestion."""

    id: str
    url: str
    title: str
    document_type: DocumentType = DocumentType.GENERAL
    content_hash: Optional[str] = None
    downloaded_at: Optional[datetime] = None
    ingested_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None


class ChunkMetadata(FrozenModel):
    # identity and provenance
    document_id: str
    document_title: str
    document_url: str
    document_type: DocumentType
    department: Optional[str] = None
    section_number: Optional[str] = None
    section_title: Optional[str] = None
    page_number: Optional[int] = None

    # temporal
    effective_date: Optional[str] = None
    last_amended: Optional[str] = None
    document_date: Optional[str] = None

    # structural
    chunk_type: ChunkType = ChunkType.INFORMATIONAL
    contains_table: bool = False
    cross_references: Tuple[str, ...] = ()
    keywords: Tuple[str, ...] = ()
    applies_to: Tuple[str, ...] = ()

    # sequencing
    chunk_index: int = 0
    total_chunks: int = 1
    content_hash: str = ""

    oversized: bool = False

    def to_payload(self) -> Dict[str, Any]:
        """Flatten to a JSON-safe dict for storage payloads."""
        return self.model_dump(mode="json")


class Chunk(FrozenModel):
    """One retrieval unit. Created only by the chunker, never mutated."""

    chunk_id: str
    document_id: str
    text: str
    metadata: ChunkMetadata
    token_count: int
