"""Tests for prompt building, response parsing and the AI review flow."""
import json
from types import SimpleNamespace
from typing import Any, List

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from contract_ai.models.database_models import (
    Organization,
    Playbook,
    Rule,
    Severity,
)
from contract_ai.services.ai_analysis import AIAnalysisError, AIAnalysisService
from tests.conftest import FakeAnthropic, sample_ai_reply

CONTENT = (
    "MASTER SERVICES AGREEMENT\n\n"
    "1. Liability. The Vendor shall have unlimited liability.\n\n"
    "2. Term. This agreement lasts one year."
)


def _rule(rule_id, name, severity, order_index, active=True, preferred=None):
    return SimpleNamespace(
        id=rule_id,
        name=name,
        type="General",
        severity=severity,
        ai_prompt=f"Check {name.lower()}.",
        preferred_language=preferred,
        is_active=active,
        order_index=order_index,
    )


def _playbook(rules=None, description="Vendor positions", contract_type="MSA"):
    return SimpleNamespace(
        name="Vendor Review",
        description=description,
        contract_type=contract_type,
        rules=rules or [],
    )


def _service(reply: Any = None) -> AIAnalysisService:
    return AIAnalysisService(client=FakeAnthropic(reply if reply is not None else sample_ai_reply()))


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def test_missing_api_key_raises():
    with pytest.raises(AIAnalysisError, match="ANTHROPIC_API_KEY is required"):
        AIAnalysisService()


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

def test_system_prompt_describes_output_structure():
    prompt = _service().build_system_prompt()
    for key in ("summary", "riskScore", "complianceScore", "changes", "missingClauses", "risks", "keyTerms"):
        assert f'"{key}"' in prompt


def test_analysis_prompt_orders_active_rules_by_severity():
    rules = [
        _rule("r-low", "Low rule", Severity.LOW, 0),
        _rule("r-crit-2", "Critical second", Severity.CRITICAL, 2),
        _rule("r-off", "Disabled rule", Severity.CRITICAL, 0, active=False),
        _rule("r-crit-1", "Critical first", "CRITICAL", 1, preferred="Use the standard cap."),
        _rule("r-info", "Info rule", Severity.INFO, 0),
    ]
    prompt = _service().build_analysis_prompt(CONTENT, _playbook(rules))

    assert prompt.startswith(f"**CONTRACT TO ANALYZE:**\n\n{CONTENT}\n\n")
    assert "**PLAYBOOK: Vendor Review**\n" in prompt
    assert "Description: Vendor positions\n" in prompt
    assert "Contract Type: MSA\n" in prompt
    assert "Disabled rule" not in prompt

    assert "**Rule 1: Critical first** (ID: r-crit-1)\n" in prompt
    assert "**Rule 2: Critical second** (ID: r-crit-2)\n" in prompt
    assert "**Rule 3: Low rule** (ID: r-low)\n" in prompt
    assert "**Rule 4: Info rule** (ID: r-info)\n" in prompt
    assert "Severity: CRITICAL\n" in prompt
    assert "Preferred Language/Format:\nUse the standard cap.\n" in prompt
    assert prompt.rstrip().endswith("Analyze thoroughly and provide specific, actionable recommendations.")


def test_analysis_prompt_omits_optional_playbook_fields():
    prompt = _service().build_analysis_prompt(CONTENT, _playbook(description=None, contract_type=None))
    assert "Description:" not in prompt
    assert "Contract Type:" not in prompt
    assert "**REVIEW RULES:**" in prompt


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def test_parse_response_with_code_fence_and_prose():
    raw = "Here is my review:\n```json\n" + json.dumps(sample_ai_reply()) + "\n```\nLet me know!"
    analysis = _service().parse_ai_response(raw)
    assert analysis.summary.startswith("Liability is uncapped")
    assert analysis.risk_score == 7.5
    assert len(analysis.changes) == 2
    assert analysis.risks[0].mitigation == "Cap liability"
    assert analysis.key_terms[0].definition == "The hosted platform"


def test_parse_response_repairs_trailing_commas():
    raw = '{"summary": "ok", "riskScore": 3, "changes": [], "missingClauses": ["A",],}'
    analysis = _service().parse_ai_response(raw)
    assert analysis.missing_clauses == ["A"]


def test_parse_response_repair_leaves_quoted_text_alone():
    content = "Schedule 2. None of the Supplier's obligations survive termination. True copies apply."
    raw = (
        '{"summary": "None of the indemnities are capped. True or False?", "riskScore": 6,\n'
        ' "changes": [{"type": "DELETION", "originalText": "None of the Supplier\'s obligations",'
        ' "reason": "Obligations must survive.", "ruleId": None, "confidence": 0.8,}],\n'
        ' "missingClauses": [],}'
    )
    service = _service()
    analysis = service.parse_ai_response(raw)

    assert analysis.summary == "None of the indemnities are capped. True or False?"
    change = analysis.changes[0]
    assert change.original_text == "None of the Supplier's obligations"
    assert change.rule_id is None

    service.map_changes_to_document(analysis.changes, content)
    assert change.position.match_type == "exact"
    assert change.position.start == content.index("None of the Supplier's")
    assert content[change.position.start:change.position.end] == change.original_text


def test_parse_response_drops_overlong_rule_id():
    long_rule = "Limitation of Liability - Mutual Cap Rule " * 10
    raw = json.dumps({
        "summary": "s",
        "riskScore": 5,
        "changes": [
            {"type": "REPLACEMENT", "originalText": "x", "reason": "r", "ruleId": long_rule},
            {"type": "REPLACEMENT", "originalText": "y", "reason": "r", "ruleId": "Limitation of Liability - Mutual Cap Rule"},
        ],
    })
    changes = _service().parse_ai_response(raw).changes
    assert changes[0].rule_id is None
    assert changes[1].rule_id == "Limitation of Liability - Mutual Cap Rule"


def test_parse_response_defaults_and_clamps():
    analysis = _service().parse_ai_response('{"summary": "s", "riskScore": 15}')
    assert analysis.risk_score == 10
    assert analysis.compliance_score == 5
    assert analysis.changes == []
    assert analysis.missing_clauses == []
    assert analysis.risks == []
    assert analysis.key_terms == []

    analysis = _service().parse_ai_response('{"summary": "s", "riskScore": -2, "complianceScore": 0}')
    assert analysis.risk_score == 0
    assert analysis.compliance_score == 5

    analysis = _service().parse_ai_response('{"summary": "s", "riskScore": 4, "complianceScore": 42}')
    assert analysis.compliance_score == 10


def test_parse_response_normalizes_changes():
    raw = json.dumps({
        "summary": "s",
        "riskScore": 5,
        "changes": [
            {"type": "rewrite", "severity": "high", "confidence": 3, "originalText": "x", "reason": "r"},
            {"type": "DELETION", "severity": "BOGUS"},
            "not a change",
        ],
    })
    changes = _service().parse_ai_response(raw).changes
    assert len(changes) == 2
    assert changes[0].type == "REPLACEMENT"
    assert changes[0].severity == "HIGH"
    assert changes[0].confidence == 1.0
    assert changes[1].type == "DELETION"
    assert changes[1].severity == "MEDIUM"
    assert changes[1].confidence == 0.5
    assert changes[1].reason == ""


@pytest.mark.parametrize(
    "raw",
    [
        "no json here",
        '{"riskScore": 4}',
        '{"summary": "", "riskScore": 4}',
        '{"summary": "s", "riskScore": "7"}',
        '{"summary": "s", "riskScore": true}',
        "[1, 2, 3]",
    ],
)
def test_parse_response_rejects_invalid_structure(raw):
    with pytest.raises(AIAnalysisError, match="^Failed to parse AI response: "):
        _service().parse_ai_response(raw)


# ---------------------------------------------------------------------------
# analyze_contract
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_analyze_contract_positions_changes():
    service = _service()
    rules = [_rule("rule-1", "Liability cap", Severity.CRITICAL, 0)]
    analysis = await service.analyze_contract(CONTENT, _playbook(rules))

    replacement = analysis.changes[0]
    expected = CONTENT.index("The Vendor shall have unlimited liability.")
    assert replacement.position.start == expected
    assert replacement.position.line == 3
    assert replacement.position.paragraph == 1
    assert replacement.rule_id == "rule-1"

    insertion = analysis.changes[1]
    assert insertion.original_text is None
    assert (insertion.position.start, insertion.position.end) == (0, 0)

    call = service.client.messages.calls[0]
    assert call["max_tokens"] == 8000
    assert call["temperature"] == 0.2
    assert call["system"] == service.build_system_prompt()
    assert call["messages"][0]["role"] == "user"


@pytest.mark.asyncio
async def test_analyze_contract_empty_text_block():
    with pytest.raises(AIAnalysisError, match="^AI analysis failed: Empty response from AI"):
        await _service("").analyze_contract(CONTENT, _playbook())


@pytest.mark.asyncio
async def test_analyze_contract_non_text_block():
    service = _service()

    async def _tool_use(**kwargs):
        return SimpleNamespace(content=[SimpleNamespace(type="tool_use", id="t1")])

    service.client.messages.create = _tool_use
    with pytest.raises(AIAnalysisError, match="Invalid response format from AI"):
        await service.analyze_contract(CONTENT, _playbook())


@pytest.mark.asyncio
async def test_analyze_contract_wraps_client_errors():
    with pytest.raises(AIAnalysisError, match="^AI analysis failed: connection reset"):
        await _service(ConnectionError("connection reset")).analyze_contract(CONTENT, _playbook())


# ---------------------------------------------------------------------------
# analyze_multiple_contracts
# ---------------------------------------------------------------------------

class _SequencedMessages:
    def __init__(self, replies: List[Any]) -> None:
        self.replies = list(replies)

    async def create(self, **kwargs):
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=json.dumps(reply))])


@pytest.mark.asyncio
async def test_analyze_multiple_contracts(db_session: AsyncSession):
    org = Organization(name="Acme", slug="acme")
    playbook = Playbook(
        organization=org,
        name="Batch Playbook",
        rules=[Rule(name="Cap", type="Liability", severity=Severity.HIGH, ai_prompt="Cap it.")],
    )
    db_session.add_all([org, playbook])
    await db_session.flush()

    client = SimpleNamespace(messages=_SequencedMessages([sample_ai_reply(), TimeoutError("timed out")]))
    service = AIAnalysisService(client=client)

    results = await service.analyze_multiple_contracts(
        [{"id": "c1", "content": CONTENT}, {"id": "c2", "content": CONTENT}],
        playbook.id,
        db_session,
    )
    assert [r["contract_id"] for r in results] == ["c1", "c2"]
    assert results[0]["analysis"].summary.startswith("Liability")
    assert results[0]["error"] is None
    assert results[1]["analysis"] is None
    assert results[1]["error"] == "AI analysis failed: timed out"


@pytest.mark.asyncio
async def test_analyze_multiple_contracts_unknown_playbook(db_session: AsyncSession):
    with pytest.raises(ValueError, match="Playbook not found"):
        await _service().analyze_multiple_contracts([], "missing", db_session)
