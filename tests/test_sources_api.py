"""Tests for lead source management and the public source list."""

import uuid

import pytest
from httpx import AsyncClient

from app.db.models import LeadRecord, Source
from app.services import source_service


@pytest.mark.asyncio
async def test_source_crud(client: AsyncClient, db):
    res = await client.post(
        "/sources", json={"name": "  Street Samparka ", "description": "Door to door", "order": 2}
    )
    assert res.status_code == 201
    created = res.json()
    assert created["name"] == "Street Samparka"
    assert created["is_active"] is True

    res = await client.get(f"/sources/{created['id']}")
    assert res.json()["description"] == "Door to door"

    res = await client.patch(
        f"/sources/{created['id']}", json={"is_active": False, "description": None}
    )
    assert res.status_code == 200
    assert res.json()["is_active"] is False
    assert res.json()["description"] is None
    assert res.json()["order"] == 2

    res = await client.delete(f"/sources/{created['id']}")
    assert res.status_code == 204
    assert db.query(Source).count() == 0
    assert (await client.get(f"/sources/{created['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_duplicate_name_conflicts(client: AsyncClient):
    await client.post("/sources", json={"name": "Sangha Utsav"})
    other = (await client.post("/sources", json={"name": "Friend Circle"})).json()

    res = await client.post("/sources", json={"name": "Sangha Utsav"})
    assert res.status_code == 409

    res = await client.patch(f"/sources/{other['id']}", json={"name": "Sangha Utsav"})
    assert res.status_code == 409

    # Renaming to its own name is not a conflict
    res = await client.patch(f"/sources/{other['id']}", json={"name": "Friend Circle"})
    assert res.status_code == 200


@pytest.mark.asyncio
async def test_blank_name_rejected(client: AsyncClient):
    res = await client.post("/sources", json={"name": "   "})
    assert res.status_code == 422


@pytest.mark.asyncio
async def test_public_list_has_active_names_in_order(client: AsyncClient, db):
    for name, order, active in [("Yuva Conclave", 1, True), ("Friend Circle", 0, True), ("Old Drive", 2, False)]:
        db.add(Source(name=name, order=order, is_active=active))
    db.commit()

    res = await client.get("/public/sources")
    assert res.status_code == 200
    assert res.json() == ["Friend Circle", "Yuva Conclave"]

    res = await client.get("/sources", params={"active_only": True})
    assert [s["name"] for s in res.json()] == ["Friend Circle", "Yuva Conclave"]

    res = await client.get("/sources")
    assert len(res.json()) == 3


@pytest.mark.asyncio
async def test_missing_source_404(client: AsyncClient):
    assert (await client.patch(f"/sources/{uuid.uuid4()}", json={"order": 1})).status_code == 404
    assert (await client.delete(f"/sources/{uuid.uuid4()}")).status_code == 404


def test_seed_default_sources_is_idempotent(db):
    db.add(Source(name="Street Samparka", order=9, is_active=False))
    db.commit()

    created = source_service.seed_default_sources(db)
    assert created == len(source_service.DEFAULT_SOURCES) - 1
    assert source_service.seed_default_sources(db) == 0

    names = [s.name for s in source_service.list_sources(db, active_only=True)]
    assert names[0] == "Mane Mane Samparka"
    assert "Street Samparka" not in names
    # Existing rows are left as configured
    assert source_service.get_source_by_name(db, "Street Samparka").order == 9


def test_deleting_source_keeps_record_tags(db, lead_form):
    source = Source(name="Sangha Utsav")
    db.add(source)
    db.add(LeadRecord(form_id=lead_form.id, responses=[], source="Sangha Utsav", name="Asha"))
    db.commit()

    source_service.delete_source(db, source)
    assert db.query(LeadRecord).one().source == "Sangha Utsav"
