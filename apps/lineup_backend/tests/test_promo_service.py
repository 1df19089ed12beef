"""
Tests for promo code administration.
"""

import string
from datetime import timedelta

import pytest

from lineup_backend.services import access_service, promo_service
from lineup_backend.utils.datetime_utils import utcnow
from lineup_backend.utils.exceptions import Conflict, NotFound, ValidationFailed


@pytest.mark.asyncio
async def test_create_with_generated_code(db_session):
    created = await promo_service.create_promo_code(db_session, description="Spring launch")

    assert len(created["code"]) == promo_service.GENERATED_CODE_LENGTH
    assert set(created["code"]) <= set(string.ascii_uppercase + string.digits)
    assert created["use_count"] == 0
    assert created["redemptions_count"] == 0
    assert created["is_active"] is True


@pytest.mark.asyncio
async def test_create_normalizes_code(db_session):
    created = await promo_service.create_promo_code(db_session, code="  save10 ", max_uses=2)
    assert created["code"] == "SAVE10"
    assert created["max_uses"] == 2


@pytest.mark.asyncio
async def test_duplicate_code_conflicts_regardless_of_case(db_session):
    await promo_service.create_promo_code(db_session, code="SAVE10")
    with pytest.raises(Conflict):
        await promo_service.create_promo_code(db_session, code="Save10")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [
        {"expires_at": utcnow() - timedelta(days=1)},
        {"max_uses": 0},
        {"max_uses_per_user": 0},
    ],
)
async def test_create_rejects_invalid_values(db_session, kwargs):
    with pytest.raises(ValidationFailed):
        await promo_service.create_promo_code(db_session, code="BAD", **kwargs)


@pytest.mark.asyncio
async def test_naive_expiry_is_stored_as_utc(db_session):
    naive = (utcnow() + timedelta(days=7)).replace(tzinfo=None)
    created = await promo_service.create_promo_code(db_session, code="LATER", expires_at=naive)
    assert created["expires_at"].endswith("+00:00")


@pytest.mark.asyncio
async def test_update_cannot_drop_max_uses_below_use_count(db_session, app_config, team, owner):
    created = await promo_service.create_promo_code(db_session, code="TEAMUP", max_uses=5)
    await access_service.redeem_promo(db_session, app_config, owner.id, team.id, "TEAMUP")

    with pytest.raises(ValidationFailed):
        await promo_service.update_promo_code(db_session, created["id"], max_uses=0)

    updated = await promo_service.update_promo_code(db_session, created["id"], max_uses=1, is_active=False)
    assert updated["max_uses"] == 1
    assert updated["is_active"] is False
    assert updated["redemptions_count"] == 1


@pytest.mark.asyncio
async def test_update_unknown_code(db_session):
    with pytest.raises(NotFound):
        await promo_service.update_promo_code(db_session, 4040, is_active=False)


@pytest.mark.asyncio
async def test_delete_unused_code(db_session):
    created = await promo_service.create_promo_code(db_session, code="GONE")
    await promo_service.delete_promo_code(db_session, created["id"])
    with pytest.raises(NotFound):
        await promo_service.get_promo_code(db_session, created["id"])


@pytest.mark.asyncio
async def test_delete_used_code_conflicts(db_session, app_config, team, owner):
    created = await promo_service.create_promo_code(db_session, code="KEEP")
    await access_service.redeem_promo(db_session, app_config, owner.id, team.id, "KEEP")

    with pytest.raises(Conflict):
        await promo_service.delete_promo_code(db_session, created["id"])


@pytest.mark.asyncio
async def test_list_newest_first_with_counts(db_session, app_config, team, owner):
    first = await promo_service.create_promo_code(db_session, code="FIRST")
    second = await promo_service.create_promo_code(db_session, code="SECOND")
    await access_service.redeem_promo(db_session, app_config, owner.id, team.id, "FIRST")

    listed = await promo_service.list_promo_codes(db_session)

    assert [item["id"] for item in listed] == [second["id"], first["id"]]
    assert listed[0]["redemptions_count"] == 0
    assert listed[1]["redemptions_count"] == 1
