"""
AI contract review against a playbook, using the Anthropic Messages API.

Public API
----------
AIAnalysisService.analyze_contract(content, playbook)                 -> ContractAnalysis
AIAnalysisService.analyze_multiple_contracts(contracts, playbook_id, db)
                                                                     -> List[Dict]
AIAnalysisService.parse_ai_response(text)                             -> ContractAnalysis
AIAnalysisService.map_changes_to_document(changes, content)           -> List[SuggestedChangeResult]

The model is asked for a single JSON object.  Its answer is parsed
leniently (code fences, surrounding prose, trailing commas), validated,
scores are clamped, and every suggested change is re-located inside the
contract text by ``find_text_position``.
"""
from __future__ import annotations

import dataclasses
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from anthropic import AsyncAnthropic
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from contract_ai.config import settings
from contract_ai.models.database_models import ChangeType, Playbook, Severity
from contract_ai.services.text_matching import TextPosition, find_text_position
from contract_ai.utils.helpers import clamp

logger = logging.getLogger(__name__)

SEVERITY_ORDER: Dict[str, int] = {
    "CRITICAL": 0,
    "HIGH": 1,
    "MEDIUM": 2,
    "LOW": 3,
    "INFO": 4,
}

_CHANGE_TYPES = {t.value for t in ChangeType}
_SEVERITIES = {s.value for s in Severity}

DEFAULT_COMPLIANCE_SCORE = 5.0
DEFAULT_CONFIDENCE = 0.5
# Longest rule reference kept from the model; matches SuggestedChange.rule_id
MAX_RULE_ID_LENGTH = 255

_JSON_STRING_RE = re.compile(r'("(?:[^"\\]|\\.)*")', re.DOTALL)


class AIAnalysisError(Exception):
    """The LLM call failed or its answer could not be used."""


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class SuggestedChangeResult:
    type: str
    reason: str
    severity: str
    confidence: float
    original_text: Optional[str] = None
    suggested_text: Optional[str] = None
    rule_id: Optional[str] = None
    position: Optional[TextPosition] = None


@dataclasses.dataclass
class RiskAssessment:
    type: str
    severity: str
    description: str
    impact: str = ""
    mitigation: str = ""

    def as_dict(self) -> Dict[str, str]:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class ExtractedTerm:
    term: str
    category: str = ""
    importance: str = ""
    definition: Optional[str] = None

    def as_dict(self) -> Dict[str, Optional[str]]:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class ContractAnalysis:
    """Validated answer of one review, changes positioned once mapped."""

    summary: str
    risk_score: float
    compliance_score: float
    changes: List[SuggestedChangeResult]
    missing_clauses: List[str]
    risks: List[RiskAssessment]
    key_terms: List[ExtractedTerm]


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = """\
You are an expert legal contract reviewer with extensive experience in commercial law, \
risk assessment, and compliance. Your role is to analyze contracts against provided \
playbook rules and suggest specific improvements.

**Core Responsibilities:**
1. Identify exact text that needs modification based on playbook rules
2. Provide specific replacement text with legal justification
3. Assess overall risk and compliance scores (0-10 scale)
4. Extract key terms and identify missing provisions
5. Maintain consistency with legal best practices

**Analysis Standards:**
- Be precise with text matching - quote exact phrases that need changes
- Provide clear, actionable recommendations
- Consider jurisdiction-specific requirements
- Assess both legal and business risks
- Follow GDPR and SOC2 compliance standards when applicable

**Output Format:**
Respond with valid JSON using this exact structure:
{
  "summary": "Brief executive summary of key findings",
  "riskScore": 7.5,
  "complianceScore": 8.2,
  "changes": [
    {
      "type": "REPLACEMENT",
      "originalText": "exact text to change",
      "suggestedText": "improved replacement text",
      "reason": "detailed explanation with legal basis",
      "severity": "HIGH",
      "ruleId": "rule-id-if-applicable",
      "confidence": 0.95
    }
  ],
  "missingClauses": ["list of important missing provisions"],
  "risks": [
    {
      "type": "Liability Risk",
      "severity": "HIGH",
      "description": "Specific risk description",
      "impact": "Potential business impact",
      "mitigation": "Recommended mitigation strategy"
    }
  ],
  "keyTerms": [
    {
      "term": "Key Term",
      "definition": "How it's defined in the contract",
      "category": "Legal/Business/Technical",
      "importance": "HIGH/MEDIUM/LOW"
    }
  ]
}

**Important:** Ensure all JSON is valid and properly escaped."""

_ANALYSIS_INSTRUCTIONS = """\

**ANALYSIS INSTRUCTIONS:**
1. Review the contract against each active rule
2. Identify specific text that violates or could improve compliance
3. Provide exact replacement text following legal best practices
4. Calculate risk score (0-10) considering: liability, enforceability, compliance gaps
5. Calculate compliance score (0-10) for GDPR, SOC2, and industry standards
6. Extract key terms and identify missing critical provisions

Analyze thoroughly and provide specific, actionable recommendations."""


def _enum_value(value: Any) -> str:
    return getattr(value, "value", value)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class AIAnalysisService:
    """Reviews contract text against a playbook with Claude."""

    def __init__(self, client: Optional[AsyncAnthropic] = None) -> None:
        if client is None:
            if not settings.ANTHROPIC_API_KEY:
                raise AIAnalysisError("ANTHROPIC_API_KEY is required")
            client = AsyncAnthropic(
                api_key=settings.ANTHROPIC_API_KEY,
                timeout=settings.ANTHROPIC_TIMEOUT,
            )
        self.client = client
        self.model = settings.ANTHROPIC_MODEL
        self.max_tokens = settings.ANTHROPIC_MAX_TOKENS
        self.temperature = settings.ANTHROPIC_TEMPERATURE

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def analyze_contract(self, content: str, playbook: Playbook) -> ContractAnalysis:
        """
        Run one review of *content* against *playbook* (rules must be loaded).

        Raises:
            AIAnalysisError: on any failure, message prefixed
                ``"AI analysis failed: "``.
        """
        logger.info("Starting AI analysis for contract with playbook: %s", playbook.name)

        try:
            system_prompt = self.build_system_prompt()
            user_prompt = self.build_analysis_prompt(content, playbook)

            analysis_text = await self._call_llm(system_prompt, user_prompt)
            analysis = self.parse_ai_response(analysis_text)
            analysis.changes = self.map_changes_to_document(analysis.changes, content)

        except Exception as exc:
            logger.error("AI analysis failed: %s", exc)
            raise AIAnalysisError(f"AI analysis failed: {exc}") from exc

        located = sum(1 for c in analysis.changes if c.position and c.position.found)
        logger.info(
            "AI analysis completed. Found %d suggestions (%d located)",
            len(analysis.changes),
            located,
        )
        return analysis

    async def analyze_multiple_contracts(
        self,
        contracts: List[Dict[str, str]],
        playbook_id: str,
        db: AsyncSession,
    ) -> List[Dict[str, Any]]:
        """
        Review each ``{"id", "content"}`` item sequentially with one playbook.

        A failing contract yields ``{"contract_id", "analysis": None, "error"}``
        and does not stop the batch.

        Raises:
            ValueError: the playbook does not exist.
        """
        result = await db.execute(
            select(Playbook)
            .options(selectinload(Playbook.rules))
            .where(Playbook.id == playbook_id)
        )
        playbook = result.scalar_one_or_none()
        if playbook is None:
            raise ValueError("Playbook not found")

        results: List[Dict[str, Any]] = []
        for contract in contracts:
            try:
                analysis = await self.analyze_contract(contract["content"], playbook)
                results.append({"contract_id": contract["id"], "analysis": analysis, "error": None})
            except AIAnalysisError as exc:
                logger.error("Failed to analyze contract %s: %s", contract["id"], exc)
                results.append({"contract_id": contract["id"], "analysis": None, "error": str(exc)})
        return results

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    def build_system_prompt(self) -> str:
        return _SYSTEM_PROMPT

    def build_analysis_prompt(self, content: str, playbook: Playbook) -> str:
        """Contract text, playbook header, active rules by severity, instructions."""
        parts = [f"**CONTRACT TO ANALYZE:**\n\n{content}\n\n"]

        parts.append(f"**PLAYBOOK: {playbook.name}**\n")
        if playbook.description:
            parts.append(f"Description: {playbook.description}\n")
        if playbook.contract_type:
            parts.append(f"Contract Type: {playbook.contract_type}\n")
        parts.append("\n**REVIEW RULES:**\n\n")

        active_rules = sorted(
            (rule for rule in playbook.rules if rule.is_active),
            key=lambda r: (
                SEVERITY_ORDER.get(_enum_value(r.severity), len(SEVERITY_ORDER)),
                r.order_index or 0,
            ),
        )

        for index, rule in enumerate(active_rules, start=1):
            parts.append(f"**Rule {index}: {rule.name}** (ID: {rule.id})\n")
            parts.append(f"Type: {rule.type}\n")
            parts.append(f"Severity: {_enum_value(rule.severity)}\n")
            parts.append(f"Instructions: {rule.ai_prompt}\n")
            if rule.preferred_language:
                parts.append(f"Preferred Language/Format:\n{rule.preferred_language}\n")
            parts.append("\n")

        parts.append(_ANALYSIS_INSTRUCTIONS)
        return "".join(parts)

    # ------------------------------------------------------------------
    # LLM caller
    # ------------------------------------------------------------------

    async def _call_llm(self, system_prompt: str, user_prompt: str) -> str:
        """Send one Messages API request and return the first text block."""
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )

        first = response.content[0] if response.content else None
        if first is None or first.type != "text":
            raise AIAnalysisError("Invalid response format from AI")
        if not first.text:
            raise AIAnalysisError("Empty response from AI")
        return first.text

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    def parse_ai_response(self, response_text: str) -> ContractAnalysis:
        """
        Validate and normalise the model's JSON answer.

        Raises:
            AIAnalysisError: ``"Failed to parse AI response: ..."``; the raw
                response is logged.
        """
        try:
            ok, data = self._parse_json_robust(response_text)
            if not ok or not isinstance(data, dict):
                raise ValueError("No JSON found in AI response")

            summary = data.get("summary")
            risk_score = data.get("riskScore")
            if (
                not summary
                or not isinstance(summary, str)
                or isinstance(risk_score, bool)
                or not isinstance(risk_score, (int, float))
            ):
                raise ValueError("Invalid analysis structure")

            compliance = data.get("complianceScore") or DEFAULT_COMPLIANCE_SCORE

            return ContractAnalysis(
                summary=summary,
                risk_score=clamp(risk_score, 0.0, 10.0, 0.0),
                compliance_score=clamp(compliance, 0.0, 10.0, DEFAULT_COMPLIANCE_SCORE),
                changes=[
                    self._normalize_change(c)
                    for c in (data.get("changes") or [])
                    if isinstance(c, dict)
                ],
                missing_clauses=[
                    str(c) for c in (data.get("missingClauses") or []) if c
                ],
                risks=[
                    self._normalize_risk(r)
                    for r in (data.get("risks") or [])
                    if isinstance(r, dict)
                ],
                key_terms=[
                    self._normalize_term(t)
                    for t in (data.get("keyTerms") or [])
                    if isinstance(t, dict) and t.get("term")
                ],
            )

        except Exception as exc:
            logger.error("Failed to parse AI response: %s", exc)
            logger.error("Raw response: %s", response_text)
            raise AIAnalysisError(f"Failed to parse AI response: {exc}") from exc

    @staticmethod
    def _normalize_change(raw: Dict[str, Any]) -> SuggestedChangeResult:
        change_type = str(raw.get("type") or "").upper()
        severity = str(raw.get("severity") or "").upper()
        rule_id = str(raw.get("ruleId") or "").strip()
        if len(rule_id) > MAX_RULE_ID_LENGTH:
            logger.warning("Dropping over-long ruleId from AI response: %s...", rule_id[:50])
            rule_id = ""
        return SuggestedChangeResult(
            type=change_type if change_type in _CHANGE_TYPES else ChangeType.REPLACEMENT.value,
            original_text=raw.get("originalText") or None,
            suggested_text=raw.get("suggestedText") or None,
            reason=str(raw.get("reason") or ""),
            severity=severity if severity in _SEVERITIES else Severity.MEDIUM.value,
            rule_id=rule_id or None,
            confidence=clamp(raw.get("confidence"), 0.0, 1.0, DEFAULT_CONFIDENCE),
        )

    @staticmethod
    def _normalize_risk(raw: Dict[str, Any]) -> RiskAssessment:
        return RiskAssessment(
            type=str(raw.get("type") or ""),
            severity=str(raw.get("severity") or ""),
            description=str(raw.get("description") or ""),
            impact=str(raw.get("impact") or ""),
            mitigation=str(raw.get("mitigation") or ""),
        )

    @staticmethod
    def _normalize_term(raw: Dict[str, Any]) -> ExtractedTerm:
        return ExtractedTerm(
            term=str(raw["term"]),
            definition=raw.get("definition") or None,
            category=str(raw.get("category") or ""),
            importance=str(raw.get("importance") or ""),
        )

    def _parse_json_robust(self, response: str) -> Tuple[bool, Any]:
        """
        Parse the outermost JSON object out of potentially messy LLM output.

        Handles markdown code fences, surrounding prose, trailing commas,
        Python-style True / False / None and ``//`` comments.
        """
        if not response:
            return False, None

        text = self._strip_code_fences(response.strip())

        ok, val = self._try_json(text)
        if ok:
            return True, val

        ok, val = self._try_json(self._fix_json_issues(text))
        if ok:
            return True, val

        fragment = self._extract_json_object(text)
        if fragment:
            ok, val = self._try_json(fragment)
            if ok:
                return True, val
            ok, val = self._try_json(self._fix_json_issues(fragment))
            if ok:
                return True, val

        logger.warning("_parse_json_robust: all strategies failed. Preview: %s", response[:400])
        return False, None

    @staticmethod
    def _try_json(text: str) -> Tuple[bool, Any]:
        try:
            return True, json.loads(text)
        except (json.JSONDecodeError, ValueError):
            return False, None

    @staticmethod
    def _strip_code_fences(text: str) -> str:
        """Remove ```json / ``` delimiters around the answer."""
        text = re.sub(r"^```(?:json|javascript|text)?\s*\n?", "", text, flags=re.IGNORECASE)
        text = re.sub(r"\n?```\s*$", "", text)
        return text.strip()

    @classmethod
    def _fix_json_issues(cls, text: str) -> str:
        # Only the text between string literals is repaired; quoted clause
        # text must reach find_text_position untouched
        parts = _JSON_STRING_RE.split(text)
        for i in range(0, len(parts), 2):
            parts[i] = cls._fix_json_syntax(parts[i])
        return "".join(parts).strip()

    @staticmethod
    def _fix_json_syntax(segment: str) -> str:
        segment = re.sub(r",(\s*[}\]])", r"\1", segment)
        segment = re.sub(r"\bTrue\b", "true", segment)
        segment = re.sub(r"\bFalse\b", "false", segment)
        segment = re.sub(r"\bNone\b", "null", segment)
        segment = re.sub(r"(?m)^\s*//[^\n]*$", "", segment)
        return segment

    @staticmethod
    def _extract_json_object(text: str) -> str:
        """
        Return the first balanced ``{ ... }`` block in *text*, ignoring braces
        inside strings; falls back to first ``{`` .. last ``}``.
        """
        start = text.find("{")
        if start == -1:
            return ""

        depth = 0
        in_string = False
        escape_next = False

        for i, ch in enumerate(text[start:], start=start):
            if escape_next:
                escape_next = False
                continue
            if ch == "\\" and in_string:
                escape_next = True
                continue
            if ch == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]

        end = text.rfind("}")
        return text[start : end + 1] if end > start else ""

    # ------------------------------------------------------------------
    # Positioning
    # ------------------------------------------------------------------

    def map_changes_to_document(
        self,
        changes: List[SuggestedChangeResult],
        content: str,
    ) -> List[SuggestedChangeResult]:
        """Attach a TextPosition to every change from its ``original_text``."""
        for change in changes:
            change.position = find_text_position(change.original_text or "", content)
        return changes
