"""Identifier generation for new applications.

A codification looks like ``CEISH-ESPOL-23-05-EO-SH-007-K3Q9ZP1A``:
institutional prefix, two-digit year, two-digit month, investigation type
code, category code, the global sequential number padded to three digits,
and a random disambiguator.

The sequential number is the global maximum plus one, taken over every
application ever created (soft-deleted ones included), so numbers are never
reused.  ``generate_codification`` must run inside
``locks.creation_transaction`` and the caller must insert the application in
that same transaction; otherwise two creations can read the same maximum.
"""

import logging
import random
import string
from datetime import datetime, timezone
from typing import NamedTuple
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.application import CategoryType, InvestigationType
from app.services.workflow import store
from app.services.workflow.errors import (
    CollisionDetectedError,
    InvalidCategoryError,
    InvalidInvestigationTypeError,
)

logger = logging.getLogger(__name__)

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


class Codification(NamedTuple):
    codification: str
    sequential_number: int


def parse_category(value: CategoryType | str) -> CategoryType:
    try:
        return CategoryType(value)
    except ValueError:
        valid = ", ".join(c.value for c in CategoryType)
        raise InvalidCategoryError(
            f"Invalid category type: {value!r}. Must be one of: {valid}"
        ) from None


def parse_investigation_type(value: InvestigationType | str) -> InvestigationType:
    try:
        return InvestigationType(value)
    except ValueError:
        valid = ", ".join(t.value for t in InvestigationType)
        raise InvalidInvestigationTypeError(
            f"Invalid investigation type: {value!r}. Must be one of: {valid}"
        ) from None


def random_suffix(length: int | None = None) -> str:
    k = length or settings.codification_suffix_length
    return "".join(random.choices(_SUFFIX_ALPHABET, k=k))


def committee_calendar(now: datetime) -> datetime:
    """Express *now* in the committee's timezone (naive values are taken as local)."""
    if now.tzinfo is None:
        return now
    return now.astimezone(ZoneInfo(settings.committee_timezone))


def build_codification(
    *,
    now: datetime,
    investigation_type: InvestigationType,
    category_type: CategoryType,
    sequential_number: int,
    suffix: str,
    prefix: str | None = None,
) -> str:
    local = committee_calendar(now)
    return "-".join((
        prefix or settings.codification_prefix,
        f"{local.year % 100:02d}",
        f"{local.month:02d}",
        investigation_type.value,
        category_type.value,
        f"{sequential_number:03d}",
        suffix,
    ))


async def generate_codification(
    db: AsyncSession,
    investigation_type: InvestigationType | str,
    category_type: CategoryType | str,
    now: datetime | None = None,
) -> Codification:
    """Reserve the next sequential number and build its codification.

    Raises InvalidCategoryError for an unknown category code and
    CollisionDetectedError if the candidate already exists; in both cases
    nothing has been written.
    """
    category = parse_category(category_type)
    investigation = parse_investigation_type(investigation_type)
    now = now or datetime.now(timezone.utc)

    sequential_number = await store.max_sequential_number(db) + 1
    codification = build_codification(
        now=now,
        investigation_type=investigation,
        category_type=category,
        sequential_number=sequential_number,
        suffix=random_suffix(),
    )

    if await store.identifier_taken(
        db, codification=codification, sequential_number=sequential_number
    ):
        logger.error(
            "Codification collision on %s (sequential number %d)",
            codification, sequential_number,
        )
        raise CollisionDetectedError(
            "Unexpected codification collision. Please try again."
        )

    logger.debug("Reserved codification %s (#%d)", codification, sequential_number)
    return Codification(codification, sequential_number)
