"""Per-query result types. Never persisted."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class SourceReference:
    """Presentation-only provenance for one retrieved chunk."""

    source_id: str
    citation: str
    document_title: str
    document_url: Optional[str] = None
    section: Optional[str] = None
    date: Optional[str] = None
    page_number: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "citation": self.citation,
            "document_title": self.document_title,
            "document_url": self.document_url,
            "section": self.section,
            "date": self.date,
            "page_number": self.page_number,
        }


@dataclass
class RetrievedChunk:
    """A merged retrieval candidate with all scoring signals."""

    id: str
    text: str
    similarity: float  # best vector similarity across query forms, clamped to [0, 1]
    metadata: Dict[str, Any] = field(default_factory=dict)
    source: Optional[SourceReference] = None

    # Scoring
    cross_encoder_score: Optional[float] = None
    formula_score: Optional[float] = None
    relevance_score: Optional[float] = None
    source_boost: float = 0.0

    # Diagnostics
    matched_forms: List[str] = field(default_factory=list)
    text_rank: float = 0.0
    lexical_score: float = 0.0  # fulltext_weight * text_rank
    vector_match: bool = True
    is_sibling: bool = False

    @property
    def match_score(self) -> float:
        """Vector similarity, or the lexical score for a full-text-only hit."""
        return self.similarity if self.vector_match else self.lexical_score

    @property
    def score(self) -> float:
        """Relevance when ranked, otherwise the match score."""
        return self.relevance_score if self.relevance_score is not None else self.match_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "similarity": round(self.similarity, 4),
            "text_rank": round(self.text_rank, 4),
            "relevance_score": (
                round(self.relevance_score, 4) if self.relevance_score is not None else None
            ),
            "cross_encoder_score": self.cross_encoder_score,
            "matched_forms": list(self.matched_forms),
            "is_sibling": self.is_sibling,
            "metadata": dict(self.metadata),
            "source": self.source.to_dict() if self.source else None,
        }
