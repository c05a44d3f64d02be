"""Schemas for the DB advisor: request payload, database context, advice.

The advisory document is a two-variant union. A payload is decoded as
`StructuredAdvice` first (strict: a numeric confidence is required and
unknown keys are rejected); anything else is kept verbatim as `RawAdvice`.
Wire keys are the French names the prompt asks the model to produce, while
attributes use English names. Both spellings are accepted on input.
"""

from __future__ import annotations

from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    RootModel,
    ValidationError,
)


DIAGNOSTIC_KEY = "diagnostic"
ACTIONS_KEY = "actions_recommandees"
RISKS_KEY = "risques"
QUERIES_KEY = "sql_suggere"
CONFIDENCE_KEY = "niveau_confiance"
NOTES_KEY = "notes_complementaires"

# Canonical wire key -> accepted alternative spellings
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    DIAGNOSTIC_KEY: (),
    ACTIONS_KEY: ("recommended_actions",),
    RISKS_KEY: ("risks",),
    QUERIES_KEY: ("suggested_queries",),
    CONFIDENCE_KEY: ("confidence",),
    NOTES_KEY: ("notes",),
}

# Sections that belong at the top level and must never stay nested in diagnostic
HOISTED_KEYS: tuple[str, ...] = (ACTIONS_KEY, RISKS_KEY, QUERIES_KEY)


def canonical_key(key: str) -> str | None:
    """Map a wire key (either spelling) to its canonical name, if it is one."""
    for canonical, aliases in FIELD_ALIASES.items():
        if key == canonical or key in aliases:
            return canonical
    return None


def _has_duplicate_spellings(payload: dict[str, Any]) -> bool:
    seen: set[str] = set()
    for key in payload:
        canonical = canonical_key(key)
        if canonical is None:
            continue
        if canonical in seen:
            return True
        seen.add(canonical)
    return False


class StructuredAdvice(BaseModel):
    """Structured advisory document.

    Attributes:
        diagnostic: Free-form diagnostic (usually an object or a string).
        recommended_actions: Array-shaped list of recommended actions.
        risks: Array-shaped list of identified risks.
        suggested_queries: Optional array of suggested SQL (never executed).
        confidence: Model-reported confidence, expected in [0, 1].
        notes: Optional complementary notes.
    """

    diagnostic: Any = None
    recommended_actions: Any = Field(
        default_factory=list,
        validation_alias=AliasChoices(ACTIONS_KEY, "recommended_actions"),
        serialization_alias=ACTIONS_KEY,
    )
    risks: Any = Field(
        default_factory=list,
        validation_alias=AliasChoices(RISKS_KEY, "risks"),
        serialization_alias=RISKS_KEY,
    )
    suggested_queries: Any | None = Field(
        default=None,
        validation_alias=AliasChoices(QUERIES_KEY, "suggested_queries"),
        serialization_alias=QUERIES_KEY,
    )
    confidence: float = Field(
        ...,
        strict=True,
        validation_alias=AliasChoices(CONFIDENCE_KEY, "confidence"),
        serialization_alias=CONFIDENCE_KEY,
    )
    notes: Any | None = Field(
        default=None,
        validation_alias=AliasChoices(NOTES_KEY, "notes"),
        serialization_alias=NOTES_KEY,
    )

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    def has_data(self) -> bool:
        """True when at least one section carries something worth showing."""
        return (
            self.diagnostic is not None
            or _non_empty_list(self.recommended_actions)
            or _non_empty_list(self.risks)
        )

    def to_flat_dict(self) -> dict[str, Any]:
        """Project to the flat wire object, omitting absent optional sections."""
        flat: dict[str, Any] = {
            DIAGNOSTIC_KEY: self.diagnostic,
            ACTIONS_KEY: self.recommended_actions,
            RISKS_KEY: self.risks,
            CONFIDENCE_KEY: self.confidence,
        }
        if self.suggested_queries is not None:
            flat[QUERIES_KEY] = self.suggested_queries
        if self.notes is not None:
            flat[NOTES_KEY] = self.notes
        return flat


class RawAdvice(RootModel[Any]):
    """Opaque fallback holding any JSON value that has no structured shape."""

    model_config = ConfigDict(frozen=True)

    def has_data(self) -> bool:
        return self.root is not None

    def to_flat_dict(self) -> Any:
        return self.root


AdvisoryDocument = StructuredAdvice | RawAdvice


def _non_empty_list(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0


def parse_advisory_document(value: Any) -> AdvisoryDocument:
    """Decode a JSON value, trying the strict structured shape first."""
    if isinstance(value, dict) and _has_duplicate_spellings(value):
        return RawAdvice(value)
    try:
        return StructuredAdvice.model_validate(value)
    except ValidationError:
        return RawAdvice(value)


# -----------------------------------------------------------------------------
# Database context
# -----------------------------------------------------------------------------


class ColumnInfo(BaseModel):
    name: str
    data_type: str
    nullable: bool | None = None
    is_primary_key: bool = False
    is_foreign_key: bool = False


class IndexInfo(BaseModel):
    name: str
    columns: list[str]
    unique: bool = False


class TableRelation(BaseModel):
    from_table: str
    from_column: str
    to_table: str
    to_column: str


class DbStats(BaseModel):
    table_count: int
    index_count: int
    estimated_size: str | None = None


class DbContext(BaseModel):
    """Read-only snapshot of a database used to build the advisor prompt."""

    dsn: str
    tables: list[str] = Field(default_factory=list)
    schemas: dict[str, list[ColumnInfo]] = Field(default_factory=dict)
    indexes: dict[str, list[IndexInfo]] = Field(default_factory=dict)
    relations: list[TableRelation] = Field(default_factory=list)
    sql_query: str | None = None
    stats: DbStats | None = None


# -----------------------------------------------------------------------------
# API payloads
# -----------------------------------------------------------------------------


class DbAdvisorRequest(BaseModel):
    """Request payload for `POST /ai/db-advisor`."""

    dsn: str = Field(
        ...,
        min_length=1,
        description="SQLAlchemy database URL of the database to analyze.",
    )
    sql_query: str | None = Field(
        default=None, description="Optional SQL statement to analyze."
    )
    mistral_api_key: str | None = Field(
        default=None,
        description="Optional API key; falls back to MISTRAL_API_KEY.",
    )
    tables: list[str] | None = Field(
        default=None,
        description="Optional table list used instead of discovering tables.",
    )

    model_config = ConfigDict(extra="forbid")
