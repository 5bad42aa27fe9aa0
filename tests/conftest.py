"""
Shared fixtures for Contract AI backend integration tests.

Runs against a throwaway SQLite database (aiosqlite) unless TEST_DATABASE_URL
points somewhere else.  Each test function gets its own session; tables are
created before and dropped after every test so each test starts clean.
"""
from __future__ import annotations

import io
import json
import os
import tempfile
from types import SimpleNamespace
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import pytest_asyncio
from docx import Document as DocxDocument
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Override settings *before* any app module is imported, so that
# settings.DATABASE_URL and the global engine point at the test DB.
TEST_DATABASE_URL = os.environ.setdefault(
    "TEST_DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "contract_ai_test.db"),
)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ.setdefault("UPLOAD_DIR", os.path.join(tempfile.gettempdir(), "contract_ai_test_uploads"))
os.environ["ANTHROPIC_API_KEY"] = ""

from contract_ai.database import Base, get_db  # noqa: E402
from contract_ai.main import app  # noqa: E402
from contract_ai.models import database_models  # noqa: E402,F401


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a DB session for each test. After the test, all tables are dropped
    so each test starts with a clean slate.
    """
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the DB dependency
    overridden to use the per-test session.
    """

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

DEFAULT_PASSWORD = "correct-horse-battery"


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def register(
    client: AsyncClient,
    email: str = "jane.doe@example.com",
    password: str = DEFAULT_PASSWORD,
    name: Optional[str] = "Jane Doe",
) -> Dict[str, Any]:
    resp = await client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "name": name},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def signed_in_org(
    client: AsyncClient,
    email: str = "jane.doe@example.com",
    name: Optional[str] = "Jane Doe",
) -> Tuple[Dict[str, str], str]:
    """Register a user and return ``(auth_headers, personal_org_id)``."""
    session = await register(client, email=email, name=name)
    headers = bearer(session["access_token"])
    resp = await client.get("/api/organizations", headers=headers)
    assert resp.status_code == 200
    return headers, resp.json()[0]["id"]


def make_docx(paragraphs: List[str], heading: Optional[str] = None) -> bytes:
    """Build a small .docx in memory."""
    document = DocxDocument()
    if heading:
        document.add_heading(heading, level=1)
    for text in paragraphs:
        document.add_paragraph(text)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

SAMPLE_PLAYBOOK = {
    "name": "SaaS Vendor Review",
    "description": "Standard positions for vendor agreements",
    "contract_type": "service agreement",
    "rules": [
        {
            "name": "Liability cap",
            "type": "Liability",
            "severity": "CRITICAL",
            "ai_prompt": "Liability must be capped at 12 months of fees.",
            "preferred_language": "Liability is limited to fees paid in the prior 12 months.",
            "order_index": 0,
        },
        {
            "name": "Governing law",
            "type": "Jurisdiction",
            "severity": "LOW",
            "ai_prompt": "Governing law should be Delaware.",
            "order_index": 1,
        },
    ],
}


# ---------------------------------------------------------------------------
# Fake Anthropic client
# ---------------------------------------------------------------------------

class FakeMessages:
    """Stands in for ``AsyncAnthropic().messages``; records every call."""

    def __init__(self, reply: Any) -> None:
        self.reply = reply
        self.calls: List[Dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        if isinstance(self.reply, Exception):
            raise self.reply
        text = self.reply if isinstance(self.reply, str) else json.dumps(self.reply)
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


class FakeAnthropic:
    def __init__(self, reply: Any) -> None:
        self.messages = FakeMessages(reply)


def sample_ai_reply(original_text: str = "The Vendor shall have unlimited liability.") -> Dict[str, Any]:
    return {
        "summary": "Liability is uncapped and governing law is missing.",
        "riskScore": 7.5,
        "complianceScore": 6,
        "changes": [
            {
                "type": "REPLACEMENT",
                "originalText": original_text,
                "suggestedText": "The Vendor's liability is limited to fees paid in the prior 12 months.",
                "reason": "Uncapped liability violates the liability cap rule.",
                "severity": "CRITICAL",
                "ruleId": "rule-1",
                "confidence": 0.9,
            },
            {
                "type": "INSERTION",
                "originalText": "",
                "suggestedText": "This Agreement is governed by the laws of Delaware.",
                "reason": "No governing law clause.",
                "severity": "LOW",
                "confidence": 0.7,
            },
        ],
        "missingClauses": ["Governing law"],
        "risks": [
            {
                "type": "Liability Risk",
                "severity": "HIGH",
                "description": "Unlimited exposure",
                "impact": "Material financial loss",
                "mitigation": "Cap liability",
            }
        ],
        "keyTerms": [
            {"term": "Services", "definition": "The hosted platform", "category": "Business", "importance": "HIGH"}
        ],
    }
