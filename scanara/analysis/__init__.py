"""
Scanara — Audit Prompt & Result Handling

  Prompt:     fixed HIPAA auditor instructions + response schema + codebase text
  Extraction: first balanced top-level {...} object in the model reply,
              tolerating prose or code fences around it
  Scoring:    overall_score → compliance label (Compliant / Needs Attention /
              Non-Compliant)
  Normalize:  every expected top-level field present, so consumers never see
              missing keys
"""
import json
from datetime import datetime, timezone

from scanara.config import COMPLIANT_MIN_SCORE, NEEDS_ATTENTION_MIN_SCORE, SCANNER_ID
from scanara.errors import ParseError

__all__ = [
    'COMPONENT_CHECKLIST', 'HIPAA_AUDIT_PROMPT', 'SYSTEM_PROMPT',
    'build_codebase_text', 'build_audit_prompt', 'response_schema',
    'extract_json_object', 'overall_score', 'compliance_status',
    'normalize_analysis', 'legacy_categories',
]

# ============================================================
# COMPONENT CHECKLIST
# ============================================================
# (section key, name, what the model should look for)
COMPONENT_CHECKLIST = {
    "administrative_safeguards": [
        ("HIPAA Compliance Officer", "check for designation in docs/code"),
        ("Employee Training", "check for training logs, documentation"),
        ("Access Control Policy", "check for RBAC implementation"),
        ("Risk Analysis & Management", "check for risk assessment docs"),
        ("Incident Response Plan", "check for incident response documentation"),
        ("Business Associate Agreements", "check for BAA references"),
        ("Audit Policy", "check for audit logging implementation"),
        ("Data Retention & Disposal Policy", "check for retention policies"),
        ("Security Management Process", "check for security documentation"),
    ],
    "technical_safeguards": [
        ("Encryption at Rest", "check database/config encryption"),
        ("Encryption in Transit", "check TLS/HTTPS enforcement"),
        ("Unique User IDs", "check for shared accounts"),
        ("Authentication", "check OAuth/JWT implementation"),
        ("Role-Based Access Control (RBAC)", "check RBAC implementation"),
        ("Multi-Factor Authentication (MFA)", "check MFA requirements"),
        ("Audit Logging", "check for PHI access logging"),
        ("Data Integrity Verification", "check for hash verification"),
        ("Session Management", "check JWT expiration, CSRF"),
        ("Automatic Logout", "check session timeout"),
    ],
    "physical_safeguards": [
        ("Server Access Control", "check cloud provider config"),
        ("Workstation Security", "check endpoint security"),
        ("Device & Media Control", "check removable storage policies"),
        ("Backup Security", "check backup encryption"),
    ],
    "data_handling": [
        ("PHI in Logs", "check for PHI in console.log/print"),
        ("PHI in URLs", "check for PHI exposure in URLs"),
        ("Input Sanitization", "check XSS/SQL injection prevention"),
        ("Secrets Management", "check for hardcoded secrets"),
        ("Dependency Security", "check for vulnerable dependencies"),
    ],
}

SECTION_TITLES = {
    "administrative_safeguards": "Administrative Safeguards",
    "technical_safeguards": "Technical Safeguards",
    "physical_safeguards": "Physical Safeguards",
    "data_handling": "Data Handling",
}

# ============================================================
# PROMPTS
# ============================================================
SYSTEM_PROMPT = ("You are a HIPAA compliance expert. Analyze code and return structured JSON "
                 "with compliance findings.")

HIPAA_AUDIT_PROMPT = """You are an automated HIPAA Compliance Auditor for codebases. Your job is to scan the entire repository provided below and return a structured, evidence-backed HIPAA readiness report. You must not modify any files. You must not access or output any real Protected Health Information (PHI). If sample data or configuration contains PHI, treat it as sensitive and redact it, replacing it with synthetic placeholders. Use only the code and configuration files provided. If you need to verify an uncertain external vendor or service, list it as "requires manual verification" and explain what to verify and where.

SCOPE:
- Scan: source files, infra-as-code (Terraform/CloudFormation), Dockerfiles, CI/CD pipelines, config files (.env, .yml, .json), package manifests, Kubernetes manifests, and README/security docs.
- Ignore: node_modules, vendor directories, build artifacts, .git directories.
- Do not attempt to decrypt secrets or fetch external systems.

OBJECTIVES (order of priority):
1. Identify PHI handling surfaces and classify them (ingest, store, transmit, display, log).
2. Evaluate Technical Safeguards: encryption at rest/in transit, auth, RBAC, MFA, session management, logging, tamper-resistance.
3. Evaluate Administrative Safeguards: documented policies, BAAs referenced in docs, training artifacts, role definitions, incident response artifacts.
4. Evaluate Physical/Infrastructure Safeguards: hosting provider config, storage controls, backups, key management references.
5. Evaluate DevOps & CI/CD: secrets in code, test data with PHI, environment segregation, automated scans, dependency vulnerabilities.
6. Produce prioritized remediation items with severity (critical/high/medium/low), exact file locations, recommended code or commands, and estimated effort in hours.

CHECKLIST:
- Encryption at rest: database config, S3/EBS encryption flags, KMS usage.
- Encryption in transit: HTTP endpoints, TLS enforcement, HSTS, secure cookie flags.
- Auth: OAuth, password hashing (bcrypt/Argon2), MFA for admin roles, role definitions.
- Secrets: hardcoded secrets, API keys, private keys, committed .env files, credentials in CI logs.
- Logging: print/console statements or structured logs that may include PHI fields; log redaction.
- Audit logging: access events logged with user id, timestamp, action, resource.
- BAAs: vendors in use (AWS, GCP, Twilio, SendGrid, Stripe, Okta) without BAA references.
- Backups & retention: backup config, lifecycle rules, retention policy notes.
- Third-party dependencies: direct dependencies with known security issues (name and version only; suggest `npm audit` or `pip-audit`).
- Infrastructure isolation: open 0.0.0.0/0 on DB ports, public buckets, unauthenticated API endpoints.

SAFETY:
Redact any suspected PHI in your output with the token "[REDACTED_PHI]".

SCORING:
Overall Score (0-100) is a weighted sum: Technical Safeguards 45%, Administrative Safeguards 30%, Physical Safeguards 10%, Audit & Logging Coverage 10%, CI/CD & DevOps Hygiene 5%. Compute each subscore (0-100) from binary and continuous checks. Round scores to 1 decimal place.

COMPONENT ANALYSIS:
Evaluate EVERY named component below. For each, give status ("compliant", "partial", "non_compliant" or "not_found"), a brief description, the evidence found or missing, step-by-step remediation, and the files involved.
{checklist}

Codebase to Analyze:

{codebase}

IMPORTANT: Return ONLY a single valid JSON object matching this schema, with no text before or after it:

{schema}
"""


def build_codebase_text(files: list) -> str:
    """Concatenate snapshot files into the payload sent to the oracle."""
    return "\n\n".join(f"=== File: {f.get('path')} ===\n{f.get('content') or ''}\n" for f in files)


def _component_template(name: str) -> dict:
    return {"name": name, "status": "compliant/partial/non_compliant/not_found",
            "description": "", "evidence": "", "remediation": "", "files": [""]}


def response_schema(repo_name: str, scan_date: str) -> dict:
    """The JSON shape the model is asked to return."""
    return {
        "metadata": {"repo": repo_name, "scan_date": scan_date, "scanned_by": SCANNER_ID},
        "scores": {
            "overall_score": 0.0, "technical_safeguards_score": 0.0,
            "administrative_safeguards_score": 0.0, "physical_safeguards_score": 0.0,
            "audit_coverage_score": 0.0, "encryption_coverage_percent": 0.0,
        },
        "summary": {
            "top_issues_count": 0, "critical": 0, "high": 0, "medium": 0, "low": 0,
            "top_3_findings": [{"title": "", "severity": "", "description": "",
                                "file_paths": [""], "line_refs": [""], "remediation": ""}],
        },
        "detailed_findings": [{
            "id": "F-0001", "category": "encryption_at_rest", "severity": "critical",
            "description": "",
            "evidence": [{"file": "", "line_start": 0, "line_end": 0, "snippet": ""}],
            "recommended_fix": {"type": "code/infra/process", "patch_example": "",
                                "commands": [""], "estimated_hours": 0.0},
        }],
        "metrics": {
            "mfa_coverage_percent": 0.0, "rbac_coverage_percent": 0.0,
            "secrets_in_code_count": 0, "baas_coverage_percent": 0.0,
            "log_redaction_coverage_percent": 0.0, "immutable_logs_enabled": False,
            "public_bucket_count": 0, "tls_enforced": True,
            "test_data_with_real_phi_count": 0, "ci_secrets_exposed_count": 0,
            "dependency_vulnerabilities_count": 0,
        },
        "remediation_plan": [{"id": "R-0001", "title": "", "priority": "critical",
                              "steps": [""], "files_to_change": [""], "estimated_hours": 0.0}],
        "actions_required": {
            "manual_verification": [{"issue_id": "F-XXXX", "action": "", "how_to_verify": ""}],
        },
        "component_analysis": {
            section: {"status": "compliant/non_compliant/partial", "score": 0.0,
                      "components": [_component_template(name) for name, _ in checks]}
            for section, checks in COMPONENT_CHECKLIST.items()
        },
    }


def _checklist_text() -> str:
    lines = []
    for n, (section, checks) in enumerate(COMPONENT_CHECKLIST.items(), 1):
        lines.append(f"{n}. {SECTION_TITLES[section]} - all {len(checks)} components:")
        lines.extend(f"   - {name} ({hint})" for name, hint in checks)
    return "\n".join(lines)


def build_audit_prompt(codebase_text: str, repo_name: str = "unknown", scan_date: str = None) -> str:
    scan_date = scan_date or datetime.now(timezone.utc).isoformat()
    schema = json.dumps(response_schema(repo_name, scan_date), indent=2)
    return HIPAA_AUDIT_PROMPT.format(checklist=_checklist_text(), codebase=codebase_text, schema=schema)


# ============================================================
# JSON EXTRACTION
# ============================================================
def _balanced_object_span(text: str):
    """(start, end) of the first balanced top-level {...} in text, or None.
    Braces inside JSON string literals are ignored."""
    start = text.find("{")
    if start < 0:
        return None
    depth, in_string, escaped = 0, False, False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return start, i + 1
    return None


def extract_json_object(text: str) -> dict:
    """Parse the first balanced top-level JSON object found in text."""
    if not text:
        raise ParseError("Empty analysis response")
    span = _balanced_object_span(text)
    if span is None:
        raise ParseError("No JSON object found in analysis response")
    try:
        return json.loads(text[span[0]:span[1]])
    except json.JSONDecodeError as e:
        raise ParseError(f"Failed to parse analysis results: {e}") from e


# ============================================================
# SCORING
# ============================================================
def overall_score(analysis: dict) -> float:
    """scores.overall_score as a 0-100 float rounded to one decimal; 0 when missing."""
    scores = analysis.get("scores")
    raw = scores.get("overall_score") if isinstance(scores, dict) else None
    if isinstance(raw, bool):
        return 0.0
    try:
        score = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if score != score:  # NaN
        return 0.0
    return round(min(max(score, 0.0), 100.0), 1)


def compliance_status(score: float) -> str:
    if score >= COMPLIANT_MIN_SCORE:
        return "Compliant"
    if score >= NEEDS_ATTENTION_MIN_SCORE:
        return "Needs Attention"
    return "Non-Compliant"


# ============================================================
# NORMALIZATION
# ============================================================
_OBJECT_FIELDS = ("metadata", "scores", "summary", "metrics", "actions_required", "component_analysis")
_LIST_FIELDS = ("detailed_findings", "remediation_plan")


def normalize_analysis(analysis: dict, repo_name: str = "unknown", scan_date: str = None) -> dict:
    """Return a copy of the model's report with every expected field present."""
    result = dict(analysis)
    for key in _OBJECT_FIELDS:
        if not isinstance(result.get(key), dict):
            result[key] = {}
    for key in _LIST_FIELDS:
        if not isinstance(result.get(key), list):
            result[key] = []

    metadata = dict(result["metadata"])
    metadata.setdefault("repo", repo_name)
    metadata.setdefault("scan_date", scan_date or datetime.now(timezone.utc).isoformat())
    metadata.setdefault("scanned_by", SCANNER_ID)
    result["metadata"] = metadata

    actions = dict(result["actions_required"])
    if not isinstance(actions.get("manual_verification"), list):
        actions["manual_verification"] = []
    result["actions_required"] = actions

    components = dict(result["component_analysis"])
    for section in COMPONENT_CHECKLIST:
        if not isinstance(components.get(section), dict):
            components[section] = {}
    result["component_analysis"] = components
    return result


def legacy_categories(scores: dict) -> dict:
    """Per-safeguard score summary kept on audit records for older dashboards."""
    def score(key):
        value = scores.get(key)
        return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0
    return {
        "technicalSafeguards": {"score": score("technical_safeguards_score")},
        "administrativeSafeguards": {"score": score("administrative_safeguards_score")},
        "physicalSafeguards": {"score": score("physical_safeguards_score")},
        "auditCoverage": {"score": score("audit_coverage_score")},
    }
