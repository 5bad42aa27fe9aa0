"""Tests for playbook and rule CRUD."""
import pytest
from httpx import AsyncClient

from tests.conftest import SAMPLE_PLAYBOOK, signed_in_org


async def _create_playbook(client: AsyncClient, headers, org_id: str, body=None) -> dict:
    resp = await client.post(
        f"/api/organizations/{org_id}/playbooks",
        json=body or SAMPLE_PLAYBOOK,
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_create_playbook_with_rules(client: AsyncClient):
    headers, org_id = await signed_in_org(client)
    data = await _create_playbook(client, headers, org_id)
    assert data["name"] == "SaaS Vendor Review"
    assert data["organization_id"] == org_id
    assert data["is_active"] is True
    assert [r["name"] for r in data["rules"]] == ["Liability cap", "Governing law"]
    assert data["rules"][0]["severity"] == "CRITICAL"


@pytest.mark.asyncio
async def test_rules_returned_in_order_index(client: AsyncClient):
    headers, org_id = await signed_in_org(client)
    body = {
        "name": "Ordered",
        "rules": [
            {"name": "Third", "type": "X", "ai_prompt": "c", "order_index": 3},
            {"name": "First", "type": "X", "ai_prompt": "a", "order_index": 1},
            {"name": "Second", "type": "X", "ai_prompt": "b", "order_index": 2},
        ],
    }
    created = await _create_playbook(client, headers, org_id, body)

    resp = await client.get(f"/api/organizations/{org_id}/playbooks/{created['id']}", headers=headers)
    assert [r["name"] for r in resp.json()["rules"]] == ["First", "Second", "Third"]


@pytest.mark.asyncio
async def test_list_and_filter_active(client: AsyncClient):
    headers, org_id = await signed_in_org(client)
    first = await _create_playbook(client, headers, org_id)
    await _create_playbook(client, headers, org_id, {"name": "Second"})

    resp = await client.patch(
        f"/api/organizations/{org_id}/playbooks/{first['id']}",
        json={"is_active": False},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False

    resp = await client.get(f"/api/organizations/{org_id}/playbooks", headers=headers)
    assert len(resp.json()) == 2
    resp = await client.get(f"/api/organizations/{org_id}/playbooks?active_only=true", headers=headers)
    assert [p["name"] for p in resp.json()] == ["Second"]


@pytest.mark.asyncio
async def test_update_playbook_keeps_required_fields(client: AsyncClient):
    headers, org_id = await signed_in_org(client)
    created = await _create_playbook(client, headers, org_id)

    resp = await client.patch(
        f"/api/organizations/{org_id}/playbooks/{created['id']}",
        json={"name": None, "description": None},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["name"] == "SaaS Vendor Review"
    assert resp.json()["description"] is None


@pytest.mark.asyncio
async def test_delete_playbook(client: AsyncClient):
    headers, org_id = await signed_in_org(client)
    created = await _create_playbook(client, headers, org_id)
    url = f"/api/organizations/{org_id}/playbooks/{created['id']}"

    resp = await client.delete(url, headers=headers)
    assert resp.status_code == 204
    resp = await client.get(url, headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_rule_crud(client: AsyncClient):
    headers, org_id = await signed_in_org(client)
    created = await _create_playbook(client, headers, org_id)
    base = f"/api/organizations/{org_id}/playbooks/{created['id']}/rules"

    resp = await client.post(
        base,
        json={"name": "Auto renewal", "type": "Term", "severity": "HIGH", "ai_prompt": "Flag auto renewal.", "order_index": 5},
        headers=headers,
    )
    assert resp.status_code == 201
    rule = resp.json()
    assert rule["playbook_id"] == created["id"]

    resp = await client.patch(f"{base}/{rule['id']}", json={"severity": "INFO", "is_active": False}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["severity"] == "INFO"
    assert resp.json()["is_active"] is False

    resp = await client.delete(f"{base}/{rule['id']}", headers=headers)
    assert resp.status_code == 204

    resp = await client.get(f"/api/organizations/{org_id}/playbooks/{created['id']}", headers=headers)
    assert len(resp.json()["rules"]) == 2

    resp = await client.delete(f"{base}/{rule['id']}", headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_playbook_from_other_org_not_found(client: AsyncClient):
    headers, org_id = await signed_in_org(client, email="a@example.com")
    created = await _create_playbook(client, headers, org_id)

    resp = await client.post("/api/organizations", json={"name": "Second Org"}, headers=headers)
    other_org = resp.json()["id"]

    resp = await client.get(f"/api/organizations/{other_org}/playbooks/{created['id']}", headers=headers)
    assert resp.status_code == 404
