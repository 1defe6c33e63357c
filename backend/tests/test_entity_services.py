"""Tests for entity services over the in-memory store, and payload schemas."""

from datetime import date, timedelta

import pytest
from app.errors import ForbiddenError, NotFoundError, ValidationError
from app.models import ErrorType, SyncTable
from app.services.base import modified_at_ms, now_iso, to_epoch_ms
from app.services.memory import InMemoryEntityStore, build_memory_services
from app.services.schemas import validate_payload

USER = "usr_TEST_ONLY_000000"
OTHER = "usr_TEST_ONLY_999999"


@pytest.fixture
def store():
    return InMemoryEntityStore()


@pytest.fixture
def svc(store):
    return build_memory_services(store)


async def _reptile(svc, reptile_payload, record_id="r1", user=USER):
    return await svc.reptiles.create(user, None, reptile_payload, record_id=record_id)


class TestReptiles:
    @pytest.mark.asyncio
    async def test_create_fills_defaults(self, svc, reptile_payload):
        reptile = await _reptile(svc, {"name": "Kaa", "species": "Python", "acquisitionDate": "2022-01-01"})

        assert reptile["id"] == "r1"
        assert reptile["sex"] == "UNKNOWN"
        assert reptile["isPublic"] is False
        assert reptile["deletedAt"] is None
        assert reptile["createdAt"] == reptile["updatedAt"]

    @pytest.mark.asyncio
    async def test_create_without_id_generates_uuid(self, svc, reptile_payload):
        reptile = await svc.reptiles.create(USER, None, reptile_payload)
        assert len(reptile["id"]) == 36

    @pytest.mark.asyncio
    async def test_client_supplied_owner_fields_ignored(self, svc, reptile_payload):
        reptile = await _reptile(svc, {**reptile_payload, "userId": OTHER, "createdAt": "1999"})
        assert reptile["userId"] == USER
        assert reptile["createdAt"] != "1999"

    @pytest.mark.asyncio
    async def test_partial_update(self, svc, reptile_payload):
        created = await _reptile(svc, reptile_payload)

        updated = await svc.reptiles.update(USER, "r1", {"notes": "Shed in blue phase"})

        assert updated["notes"] == "Shed in blue phase"
        assert updated["name"] == created["name"]
        assert updated["morph"] == "Pastel"
        assert to_epoch_ms(updated["updatedAt"]) >= to_epoch_ms(created["updatedAt"])

    @pytest.mark.asyncio
    async def test_soft_delete(self, svc, store, reptile_payload):
        await _reptile(svc, reptile_payload)

        await svc.reptiles.delete(USER, "r1")

        assert store.tables[SyncTable.REPTILES]["r1"]["deletedAt"]
        with pytest.raises(NotFoundError):
            await svc.reptiles.get_by_id(USER, "r1")
        with pytest.raises(NotFoundError):
            await svc.reptiles.update(USER, "r1", {"name": "Back"})

    @pytest.mark.asyncio
    async def test_recreate_after_delete_is_not_found(self, svc, reptile_payload):
        await _reptile(svc, reptile_payload)
        await svc.reptiles.delete(USER, "r1")
        with pytest.raises(NotFoundError):
            await _reptile(svc, reptile_payload)

    @pytest.mark.asyncio
    async def test_foreign_reptile_forbidden(self, svc, reptile_payload):
        await _reptile(svc, reptile_payload, user=OTHER)

        with pytest.raises(ForbiddenError) as exc:
            await svc.reptiles.get_by_id(USER, "r1")
        assert exc.value.kind == ErrorType.FORBIDDEN

        with pytest.raises(ForbiddenError):
            await _reptile(svc, reptile_payload)


class TestChildren:
    @pytest.mark.asyncio
    async def test_feeding_belongs_to_reptile(self, svc, reptile_payload, feeding_payload):
        await _reptile(svc, reptile_payload)

        feeding = await svc.feedings.create(USER, "r1", feeding_payload("r1"), record_id="f1")

        assert feeding["reptileId"] == "r1"
        assert feeding["preySource"] == "FROZEN_THAWED"
        assert feeding["refused"] is False
        assert "userId" not in feeding

    @pytest.mark.asyncio
    async def test_parent_required(self, svc, feeding_payload):
        with pytest.raises(ValidationError) as exc:
            await svc.feedings.create(USER, None, feeding_payload("r1"))
        assert "reptileId" in exc.value.field_errors

    @pytest.mark.asyncio
    async def test_hard_delete(self, svc, store, reptile_payload, feeding_payload):
        await _reptile(svc, reptile_payload)
        await svc.feedings.create(USER, "r1", feeding_payload("r1"), record_id="f1")

        await svc.feedings.delete(USER, "f1")

        assert "f1" not in store.tables[SyncTable.FEEDINGS]

    @pytest.mark.asyncio
    async def test_child_of_foreign_reptile(self, svc, reptile_payload, feeding_payload):
        await _reptile(svc, reptile_payload, user=OTHER)
        await svc.feedings.create(OTHER, "r1", feeding_payload("r1"), record_id="f1")

        with pytest.raises(ForbiddenError):
            await svc.feedings.get_by_id(USER, "f1")
        with pytest.raises(ForbiddenError):
            await svc.feedings.delete(USER, "f1")

    @pytest.mark.asyncio
    async def test_environment_logs_are_append_only(self, svc, reptile_payload):
        await _reptile(svc, reptile_payload)
        log = await svc.environment_logs.create(
            USER,
            "r1",
            {"date": "2024-05-01T08:00:00Z", "temperature": 88.5, "humidity": 55},
            record_id="e1",
        )

        assert "updatedAt" not in log
        assert modified_at_ms(log) == to_epoch_ms(log["createdAt"])

        changes = await svc.environment_logs.changed_since(USER, 0)
        assert [row["id"] for row in changes] == ["e1"]

    @pytest.mark.asyncio
    async def test_one_primary_photo_per_reptile(self, svc, store, reptile_payload):
        await _reptile(svc, reptile_payload)
        for pid in ("p1", "p2"):
            await svc.photos.create(
                USER,
                "r1",
                {"storagePath": f"photos/{pid}.jpg", "isPrimary": True},
                record_id=pid,
            )

        photos = store.tables[SyncTable.PHOTOS]
        assert photos["p1"]["isPrimary"] is False
        assert photos["p2"]["isPrimary"] is True

        await svc.photos.update(USER, "p1", {"isPrimary": True})
        assert photos["p1"]["isPrimary"] is True
        assert photos["p2"]["isPrimary"] is False

    @pytest.mark.asyncio
    async def test_changed_since_without_reptiles(self, svc):
        assert await svc.sheds.changed_since(USER, 0) == []


class TestSchemas:
    def test_reptile_requires_fields(self):
        with pytest.raises(ValidationError) as exc:
            validate_payload(SyncTable.REPTILES, {"name": "Monty"}, partial=False)
        assert set(exc.value.field_errors) >= {"species", "acquisitionDate"}

    def test_future_dates_rejected(self):
        tomorrow = (date.today() + timedelta(days=2)).isoformat()
        with pytest.raises(ValidationError, match="future"):
            validate_payload(
                SyncTable.REPTILES,
                {"name": "Monty", "species": "Python", "acquisitionDate": tomorrow},
                partial=False,
            )

    def test_acquired_before_birth_rejected(self):
        with pytest.raises(ValidationError, match="birth"):
            validate_payload(
                SyncTable.REPTILES,
                {
                    "name": "Monty",
                    "species": "Python",
                    "birthDate": "2023-06-01",
                    "acquisitionDate": "2023-01-01",
                },
                partial=False,
            )

    def test_shed_completed_before_start_rejected(self):
        with pytest.raises(ValidationError, match="start date"):
            validate_payload(
                SyncTable.SHEDS,
                {
                    "startDate": "2024-05-10T00:00:00Z",
                    "completedDate": "2024-05-01T00:00:00Z",
                    "quality": "COMPLETE",
                },
                partial=False,
            )

    @pytest.mark.parametrize(
        "payload",
        [
            {"date": "2024-05-01T08:00:00Z", "temperature": 151},
            {"date": "2024-05-01T08:00:00Z", "humidity": -1},
        ],
    )
    def test_environment_ranges(self, payload):
        with pytest.raises(ValidationError):
            validate_payload(SyncTable.ENVIRONMENT_LOGS, payload, partial=False)

    def test_photo_requires_storage_path(self):
        with pytest.raises(ValidationError, match="storagePath"):
            validate_payload(SyncTable.PHOTOS, {"caption": "Blue phase"}, partial=False)

    def test_measurement_value_positive(self):
        with pytest.raises(ValidationError):
            validate_payload(
                SyncTable.MEASUREMENTS,
                {"type": "WEIGHT", "value": 0, "unit": "g", "date": "2024-05-01T08:00:00Z"},
                partial=False,
            )

    def test_partial_only_returns_sent_fields(self):
        data = validate_payload(SyncTable.FEEDINGS, {"accepted": False}, partial=True)
        assert data == {"accepted": False}

    def test_output_is_camel_case(self):
        data = validate_payload(
            SyncTable.FEEDINGS,
            {
                "date": "2024-05-01T18:00:00Z",
                "preyType": "mouse",
                "preySize": "adult",
                "preySource": "LIVE",
                "accepted": True,
            },
            partial=False,
        )
        assert data["preyType"] == "mouse"
        assert "prey_type" not in data
        assert data["date"].startswith("2024-05-01T18:00:00")


class TestTimestamps:
    def test_now_iso_format(self):
        value = now_iso()
        assert value.endswith("Z")
        assert len(value) == len("2024-06-01T12:00:00.000Z")

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2024-06-01T12:00:00.000Z", 1717243200000),
            ("2024-06-01T12:00:00", 1717243200000),
            (1717243200000, 1717243200000),
            (None, None),
            ("", None),
            ("not a date", None),
            (True, None),
        ],
    )
    def test_to_epoch_ms(self, value, expected):
        assert to_epoch_ms(value) == expected

    def test_modified_at_prefers_updated_at(self):
        assert (
            modified_at_ms(
                {"createdAt": "2024-06-01T00:00:00Z", "updatedAt": "2024-06-01T12:00:00Z"}
            )
            == 1717243200000
        )
        assert modified_at_ms({}) == 0
