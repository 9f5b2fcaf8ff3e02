"""
Scanara — Analysis Oracle

The compliance analysis itself is delegated to a language model. Providers
implement one capability:

    async analyze(prompt) -> raw response text, raising OracleError

  AnthropicProvider — Claude messages API with a bounded timeout and SDK retries
  MockProvider      — deterministic sample report, used when no API key is set
"""
import json, logging

import anthropic

from scanara.config import (
    USE_REAL_API, AUDIT_MODEL, AUDIT_TEMPERATURE, AUDIT_MAX_TOKENS,
    ORACLE_TIMEOUT_SECONDS, ORACLE_MAX_RETRIES, SCANNER_ID,
)
from scanara.analysis import SYSTEM_PROMPT, COMPONENT_CHECKLIST
from scanara.errors import OracleError

logger = logging.getLogger(__name__)


class AnalysisProvider:
    """Base class for analysis oracles."""

    name = "base"

    async def analyze(self, prompt: str) -> str:
        raise NotImplementedError


# ============================================================
# CLAUDE API
# ============================================================
class AnthropicProvider(AnalysisProvider):
    name = "anthropic"

    def __init__(self, model: str = AUDIT_MODEL, max_tokens: int = AUDIT_MAX_TOKENS,
                 temperature: float = AUDIT_TEMPERATURE, timeout: float = ORACLE_TIMEOUT_SECONDS,
                 max_retries: int = ORACLE_MAX_RETRIES, client=None):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.client = client or anthropic.AsyncAnthropic(timeout=timeout, max_retries=max_retries)

    async def analyze(self, prompt: str) -> str:
        try:
            msg = await self.client.messages.create(
                model=self.model, max_tokens=self.max_tokens, temperature=self.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}])
        except anthropic.APITimeoutError as e:
            raise OracleError(f"Analysis request timed out: {e}") from e
        except anthropic.APIStatusError as e:
            raise OracleError(f"Analysis API returned {e.status_code}: {e.message}") from e
        except anthropic.APIError as e:
            raise OracleError(f"Analysis API error: {e}") from e

        text = "".join(getattr(block, "text", "") for block in (msg.content or [])).strip()
        if not text:
            raise OracleError("Analysis API returned an empty response")
        if getattr(msg, "stop_reason", None) == "max_tokens":
            logger.warning("Analysis response hit max_tokens (%d); JSON may be truncated", self.max_tokens)
        return text


# ============================================================
# MOCK MODE
# ============================================================
class MockProvider(AnalysisProvider):
    """Returns the same sample report for every prompt."""

    name = "mock"

    async def analyze(self, prompt: str) -> str:
        return json.dumps(mock_report())


def mock_report() -> dict:
    return {
        "metadata": {"repo": "demo", "scan_date": "1970-01-01T00:00:00+00:00", "scanned_by": SCANNER_ID},
        "scores": {
            "overall_score": 68.5, "technical_safeguards_score": 72.0,
            "administrative_safeguards_score": 55.0, "physical_safeguards_score": 80.0,
            "audit_coverage_score": 60.0, "encryption_coverage_percent": 75.0,
        },
        "summary": {
            "top_issues_count": 2, "critical": 0, "high": 1, "medium": 1, "low": 0,
            "top_3_findings": [{
                "title": "Mock mode: no model was consulted", "severity": "medium",
                "description": "Set ANTHROPIC_API_KEY to run a real analysis.",
                "file_paths": [], "line_refs": [], "remediation": "Configure the analysis API key.",
            }],
        },
        "detailed_findings": [{
            "id": "F-0001", "category": "secrets_management", "severity": "high",
            "description": "Sample finding produced in mock mode.",
            "evidence": [],
            "recommended_fix": {"type": "process", "patch_example": "", "commands": [],
                                "estimated_hours": 0.0},
        }],
        "metrics": {"secrets_in_code_count": 0, "tls_enforced": True},
        "remediation_plan": [{"id": "R-0001", "title": "Enable real analysis", "priority": "medium",
                              "steps": ["Set ANTHROPIC_API_KEY", "Re-run the audit"],
                              "files_to_change": [], "estimated_hours": 0.1}],
        "actions_required": {"manual_verification": []},
        "component_analysis": {
            section: {"status": "partial", "score": 0.0,
                      "components": [{"name": name, "status": "not_found", "description": "",
                                      "evidence": "", "remediation": "", "files": []}
                                     for name, _ in checks]}
            for section, checks in COMPONENT_CHECKLIST.items()
        },
    }


# ============================================================
# PROVIDER SELECTION
# ============================================================
_provider = None

def get_provider() -> AnalysisProvider:
    global _provider
    if _provider is None:
        _provider = AnthropicProvider() if USE_REAL_API else MockProvider()
        logger.info("Analysis oracle: %s", _provider.name)
    return _provider

def set_provider(provider) -> None:
    """Replace the process-wide provider (None restores the default on next use)."""
    global _provider
    _provider = provider
