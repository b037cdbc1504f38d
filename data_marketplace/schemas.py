"""
Pydantic schemas for caller-supplied marketplace input.

Declares the structural bounds of free text, lists, digests
and scores. Business rules (price floors, consent, budgets)
are enforced by the components, not here.
"""

from typing import Annotated, List, Type, TypeVar

from pydantic import BaseModel, Field, StrictBool, StrictBytes, StrictInt, StrictStr, ValidationError

from core import constants
from core.exceptions import InvalidAmountError, InvalidDataError


BoundedEntry = Annotated[StrictStr, Field(max_length=constants.MAX_LIST_ENTRY_LENGTH)]
Score = Annotated[StrictInt, Field(ge=constants.MIN_QUALITY_SCORE, le=constants.MAX_QUALITY_SCORE)]


class RecordListing(BaseModel):
    """Listing payload of a data record."""

    fingerprint: StrictBytes = Field(
        min_length=constants.FINGERPRINT_LENGTH,
        max_length=constants.FINGERPRINT_LENGTH,
    )
    metadata: StrictStr = Field(default="", max_length=constants.MAX_METADATA_LENGTH)


class ConsentTerms(BaseModel):
    """Terms attached to a consent grant."""

    purposes: List[BoundedEntry] = Field(default_factory=list, max_length=constants.MAX_LIST_ENTRIES)
    geo_restrictions: List[BoundedEntry] = Field(default_factory=list, max_length=constants.MAX_LIST_ENTRIES)
    can_reidentify: StrictBool = False


class ResearchRequestSpec(BaseModel):
    """Descriptive and capacity fields of a research request."""

    title: StrictStr = Field(min_length=1, max_length=constants.MAX_TITLE_LENGTH)
    description: StrictStr = Field(default="", max_length=constants.MAX_DESCRIPTION_LENGTH)
    purpose: StrictStr = Field(default="", max_length=constants.MAX_PURPOSE_LENGTH)
    institution: StrictStr = Field(default="", max_length=constants.MAX_INSTITUTION_LENGTH)
    approval_reference: StrictStr = Field(default="", max_length=constants.MAX_APPROVAL_REFERENCE_LENGTH)
    min_quality: StrictInt = Field(le=constants.MAX_QUALITY_SCORE)
    max_records: StrictInt = Field(ge=1)
    duration_blocks: StrictInt = Field(ge=1)


class QualityScores(BaseModel):
    """Sub-scores and notes of a quality assessment."""

    completeness: Score
    accuracy: Score
    timeliness: Score
    consistency: Score
    notes: StrictStr = Field(default="", max_length=constants.MAX_NOTES_LENGTH)


SchemaT = TypeVar("SchemaT", bound=BaseModel)


def validate_input(schema: Type[SchemaT], **values) -> SchemaT:
    """
    Build a schema instance from keyword values.

    Raises:
        InvalidDataError: Naming the first offending field
    """
    try:
        return schema(**values)
    except ValidationError as e:
        first = e.errors()[0]
        field_name = ".".join(str(part) for part in first.get("loc", ())) or schema.__name__
        raise InvalidDataError(
            f"Invalid {field_name}: {first.get('msg', 'validation failed')}",
            field=field_name,
            cause=e,
        ) from e


def require_amount(value, minimum: int, maximum: int, label: str) -> int:
    """
    Check an integer amount against inclusive bounds.

    Raises:
        InvalidAmountError: Non-integer or out-of-range value
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(f"{label} must be an integer", context={"value": repr(value)[:64]})
    if value < minimum or value > maximum:
        raise InvalidAmountError(
            f"{label} {value} outside allowed range",
            amount=value,
            minimum=minimum,
            maximum=maximum,
        )
    return value
