"""Tests for sequential numbers and codification strings."""

import asyncio
import re
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from app.models.application import (
    Application,
    ApplicationStatus,
    CategoryType,
    InvestigationType,
)
from app.services.workflow import engine, store
from app.services.workflow.codification import (
    build_codification,
    committee_calendar,
    generate_codification,
    parse_category,
    random_suffix,
)
from app.services.workflow.errors import (
    CollisionDetectedError,
    InvalidCategoryError,
    InvalidInvestigationTypeError,
)
from app.services.workflow.policy import ActorRole, TransitionEvent

MAY_2023 = datetime(2023, 5, 15, 12, 0, tzinfo=timezone.utc)


async def _seed(sessions, owner_id, sequential_number, codification):
    """Insert an application directly, bypassing identifier generation."""
    async with sessions() as db:
        async with db.begin():
            await store.insert_application(
                db,
                owner_id=owner_id,
                project_title="Seeded project",
                investigation_type=InvestigationType.OBSERVATIONAL,
                category_type=CategoryType.GENERAL,
                sequential_number=sequential_number,
                codification=codification,
                created_at=MAY_2023,
                metadata=None,
            )


async def _count(sessions) -> int:
    async with sessions() as db:
        return (await db.execute(select(func.count(Application.id)))).scalar_one()


# ── Pure helpers ─────────────────────────────────────

class TestBuildCodification:

    def test_layout(self):
        code = build_codification(
            now=MAY_2023,
            investigation_type=InvestigationType.OBSERVATIONAL,
            category_type=CategoryType.HUMAN_SUBJECTS,
            sequential_number=7,
            suffix="K3Q9ZP1A",
        )
        assert code == "CEISH-ESPOL-23-05-EO-SH-007-K3Q9ZP1A"

    def test_numbers_above_999_are_not_truncated(self):
        code = build_codification(
            now=MAY_2023,
            investigation_type=InvestigationType.INTERVENTION,
            category_type=CategoryType.GENERAL,
            sequential_number=1234,
            suffix="AAAA0000",
            prefix="TEST",
        )
        assert code == "TEST-23-05-EI-GE-1234-AAAA0000"

    def test_month_follows_committee_timezone(self):
        # 02:00 UTC on June 1st is still May 31st in Guayaquil (UTC-5)
        local = committee_calendar(datetime(2023, 6, 1, 2, 0, tzinfo=timezone.utc))
        assert (local.year, local.month, local.day) == (2023, 5, 31)

    def test_naive_datetimes_are_taken_as_local(self):
        naive = datetime(2024, 1, 1, 0, 30)
        assert committee_calendar(naive) == naive

    def test_random_suffix(self):
        suffix = random_suffix()
        assert re.fullmatch(r"[A-Z0-9]{8}", suffix)
        assert len(random_suffix(12)) == 12


class TestParsing:

    def test_valid_category(self):
        assert parse_category("SH") is CategoryType.HUMAN_SUBJECTS

    def test_invalid_category(self):
        with pytest.raises(InvalidCategoryError) as exc_info:
            parse_category("XX")
        assert exc_info.value.code == "invalid_category"


# ── Generation against the store ─────────────────────

class TestGenerateCodification:

    @pytest.mark.asyncio
    async def test_next_number_after_existing_max(self, sessions, cast):
        await _seed(sessions, cast.applicant.id, 6, "SEEDED-006")

        application = await engine.create_application(
            sessions,
            owner_id=cast.applicant.id,
            project_title="Sleep patterns in first-year students",
            investigation_type="EO",
            category_type="SH",
            now=MAY_2023,
        )

        assert application.sequential_number == 7
        assert re.fullmatch(
            r"CEISH-ESPOL-23-05-EO-SH-007-[A-Z0-9]{8}", application.codification
        )

    @pytest.mark.asyncio
    async def test_first_application_gets_number_one(self, sessions, cast):
        application = await engine.create_application(
            sessions,
            owner_id=cast.applicant.id,
            project_title="First",
            investigation_type=InvestigationType.INTERVENTION,
            category_type=CategoryType.ANIMALS_AND_LIVING_THINGS,
            now=MAY_2023,
        )
        assert application.sequential_number == 1
        assert "-EI-AN-001-" in application.codification

    @pytest.mark.asyncio
    async def test_invalid_category_writes_nothing(self, sessions, cast):
        with pytest.raises(InvalidCategoryError):
            await engine.create_application(
                sessions,
                owner_id=cast.applicant.id,
                project_title="Bad category",
                investigation_type="EO",
                category_type="ZZ",
            )
        assert await _count(sessions) == 0

    @pytest.mark.asyncio
    async def test_invalid_investigation_type(self, sessions, cast):
        with pytest.raises(InvalidInvestigationTypeError) as exc_info:
            await engine.create_application(
                sessions,
                owner_id=cast.applicant.id,
                project_title="Bad type",
                investigation_type="QQ",
                category_type="GE",
            )
        assert isinstance(exc_info.value, InvalidCategoryError)
        assert await _count(sessions) == 0

    @pytest.mark.asyncio
    async def test_deleted_numbers_are_not_reused(self, sessions, cast):
        created = []
        for i in range(3):
            created.append(await engine.create_application(
                sessions,
                owner_id=cast.applicant.id,
                project_title=f"Project {i}",
                investigation_type="EO",
                category_type="GE",
            ))
        await engine.apply_transition(
            sessions, created[-1].id, TransitionEvent.DELETE,
            cast.applicant.id, ActorRole.OWNER,
        )

        fourth = await engine.create_application(
            sessions,
            owner_id=cast.applicant.id,
            project_title="After delete",
            investigation_type="EO",
            category_type="GE",
        )
        assert fourth.sequential_number == 4

    @pytest.mark.asyncio
    async def test_concurrent_creations_get_distinct_numbers(self, sessions, cast):
        results = await asyncio.gather(*[
            engine.create_application(
                sessions,
                owner_id=cast.applicant.id,
                project_title=f"Concurrent {i}",
                investigation_type="EI",
                category_type="GE",
            )
            for i in range(10)
        ])

        numbers = sorted(a.sequential_number for a in results)
        assert numbers == list(range(1, 11))
        assert len({a.codification for a in results}) == 10

    @pytest.mark.asyncio
    async def test_collision_is_reported_without_writing(self, sessions, cast):
        await _seed(sessions, cast.applicant.id, 6, "CEISH-ESPOL-23-05-EO-SH-007-AAAAAAAA")

        with patch(
            "app.services.workflow.codification.random_suffix", return_value="AAAAAAAA"
        ):
            with pytest.raises(CollisionDetectedError) as exc_info:
                await engine.create_application(
                    sessions,
                    owner_id=cast.applicant.id,
                    project_title="Collides",
                    investigation_type="EO",
                    category_type="SH",
                    now=MAY_2023,
                )

        assert exc_info.value.retryable
        assert await _count(sessions) == 1

    @pytest.mark.asyncio
    async def test_unique_constraint_violation_maps_to_collision(self, sessions, cast):
        await _seed(sessions, cast.applicant.id, 1, "CEISH-ESPOL-23-05-EO-SH-002-BBBBBBBB")

        # Slip past the pre-insert check so the unique constraint fires
        with patch(
            "app.services.workflow.codification.random_suffix", return_value="BBBBBBBB"
        ), patch.object(store, "identifier_taken", AsyncMock(return_value=False)):
            with pytest.raises(CollisionDetectedError):
                await engine.create_application(
                    sessions,
                    owner_id=cast.applicant.id,
                    project_title="Collides at insert",
                    investigation_type="EO",
                    category_type="SH",
                    now=MAY_2023,
                )

        assert await _count(sessions) == 1

    @pytest.mark.asyncio
    async def test_generate_inside_open_transaction(self, sessions, cast):
        async with sessions() as db:
            async with db.begin():
                result = await generate_codification(db, "EO", "GE", MAY_2023)
        assert result.sequential_number == 1
        assert result.codification.startswith("CEISH-ESPOL-23-05-EO-GE-001-")

    @pytest.mark.asyncio
    async def test_new_application_starts_not_submitted(self, sessions, cast):
        application = await engine.create_application(
            sessions,
            owner_id=cast.applicant.id,
            project_title="Fresh",
            investigation_type="EO",
            category_type="GE",
        )
        assert application.status == ApplicationStatus.NOT_SUBMITTED
        assert application.date_submitted is None
