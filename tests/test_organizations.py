"""Tests for organizations, membership and tenant isolation."""
import logging

import pytest
from httpx import AsyncClient

from tests.conftest import SAMPLE_PLAYBOOK, signed_in_org


async def _add_member(client: AsyncClient, headers, org_id: str, email: str, role: str = "MEMBER"):
    return await client.post(
        f"/api/organizations/{org_id}/members",
        json={"email": email, "role": role},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_create_organization(client: AsyncClient):
    headers, _ = await signed_in_org(client)
    resp = await client.post("/api/organizations", json={"name": "Acme Legal"}, headers=headers)
    assert resp.status_code == 201
    data = resp.json()
    assert data["slug"] == "acme-legal"
    assert data["role"] == "OWNER"
    assert data["member_count"] == 1

    resp = await client.get("/api/organizations", headers=headers)
    assert {o["name"] for o in resp.json()} == {"Jane Doe's Organization", "Acme Legal"}


@pytest.mark.asyncio
async def test_create_organization_slug_collision(client: AsyncClient):
    headers, _ = await signed_in_org(client)
    await client.post("/api/organizations", json={"name": "Acme"}, headers=headers)
    resp = await client.post("/api/organizations", json={"name": "ACME!"}, headers=headers)
    assert resp.json()["slug"] == "acme-2"


@pytest.mark.asyncio
async def test_non_member_gets_404(client: AsyncClient):
    _, org_id = await signed_in_org(client, email="owner@example.com")
    outsider, _ = await signed_in_org(client, email="outsider@example.com")

    for path in ("", "/members", "/playbooks", "/contracts", "/audit-logs"):
        resp = await client.get(f"/api/organizations/{org_id}{path}", headers=outsider)
        assert resp.status_code == 404, path


@pytest.mark.asyncio
async def test_unauthenticated_requests_rejected(client: AsyncClient):
    _, org_id = await signed_in_org(client)
    resp = await client.get(f"/api/organizations/{org_id}/contracts")
    assert resp.status_code == 401
    resp = await client.get("/api/organizations")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_add_member_and_list(client: AsyncClient):
    owner, org_id = await signed_in_org(client, email="owner@example.com")
    member, _ = await signed_in_org(client, email="member@example.com", name="Mia Member")

    resp = await _add_member(client, owner, org_id, "member@example.com")
    assert resp.status_code == 201
    assert resp.json()["role"] == "MEMBER"
    assert resp.json()["name"] == "Mia Member"

    resp = await client.get(f"/api/organizations/{org_id}", headers=member)
    assert resp.status_code == 200
    assert resp.json()["role"] == "MEMBER"
    assert resp.json()["member_count"] == 2

    resp = await client.get(f"/api/organizations/{org_id}/members", headers=member)
    assert {m["email"] for m in resp.json()} == {"owner@example.com", "member@example.com"}


@pytest.mark.asyncio
async def test_add_member_errors(client: AsyncClient):
    owner, org_id = await signed_in_org(client, email="owner@example.com")
    await signed_in_org(client, email="member@example.com")

    resp = await _add_member(client, owner, org_id, "ghost@example.com")
    assert resp.status_code == 404

    assert (await _add_member(client, owner, org_id, "member@example.com")).status_code == 201
    resp = await _add_member(client, owner, org_id, "member@example.com")
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_only_admins_add_members(client: AsyncClient):
    owner, org_id = await signed_in_org(client, email="owner@example.com")
    member, _ = await signed_in_org(client, email="member@example.com")
    await signed_in_org(client, email="third@example.com")

    await _add_member(client, owner, org_id, "member@example.com", role="MEMBER")
    resp = await _add_member(client, member, org_id, "third@example.com")
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_admin_cannot_grant_owner(client: AsyncClient):
    owner, org_id = await signed_in_org(client, email="owner@example.com")
    admin, _ = await signed_in_org(client, email="admin@example.com")
    await signed_in_org(client, email="third@example.com")

    await _add_member(client, owner, org_id, "admin@example.com", role="ADMIN")
    resp = await _add_member(client, admin, org_id, "third@example.com", role="OWNER")
    assert resp.status_code == 403
    resp = await _add_member(client, admin, org_id, "third@example.com", role="VIEWER")
    assert resp.status_code == 201


@pytest.mark.asyncio
async def test_viewer_cannot_mutate(client: AsyncClient):
    owner, org_id = await signed_in_org(client, email="owner@example.com")
    viewer, _ = await signed_in_org(client, email="viewer@example.com")
    await _add_member(client, owner, org_id, "viewer@example.com", role="VIEWER")

    resp = await client.post(f"/api/organizations/{org_id}/playbooks", json=SAMPLE_PLAYBOOK, headers=viewer)
    assert resp.status_code == 403

    resp = await client.get(f"/api/organizations/{org_id}/playbooks", headers=viewer)
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_request_log_carries_org_id(client: AsyncClient, caplog):
    headers, org_id = await signed_in_org(client)
    with caplog.at_level(logging.INFO, logger="contract_ai.main"):
        await client.get(f"/api/organizations/{org_id}/playbooks", headers=headers)
    assert f"[org {org_id}] GET /api/organizations/{org_id}/playbooks" in caplog.text
