"""
Scanara — Audit Orchestrator

Audit lifecycle:
  ownership check → snapshot read → RUNNING record persisted → oracle call
  → JSON extraction → normalization → COMPLETED record + app pointer update

  RUNNING ─┬─→ COMPLETED   (app.latestAuditId / latestAuditScore updated)
           └─→ FAILED      (error message kept; app untouched)

A terminal record is never written again. The RUNNING record is stored before
the oracle is called, so an interrupted run leaves a trace.

Only the first AUDIT_MAX_FILES files of a snapshot are analyzed. The rest are
dropped from the prompt; the counts are stored on the record, not reported as
findings.

Audits for the same application are serialized in-process; different
applications never wait on each other.
"""
import asyncio, logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from scanara import db
from scanara.apps import get_owned_app, get_codebase, record_completed_audit
from scanara.analysis import (
    build_codebase_text, build_audit_prompt, extract_json_object,
    overall_score, compliance_status, normalize_analysis, legacy_categories,
)
from scanara.config import AUDIT_MAX_FILES
from scanara.errors import (
    ValidationError, NotFound, InternalError, StoreError, OracleError, ParseError,
)
from scanara.oracle import get_provider

logger = logging.getLogger(__name__)

# ============================================================
# PER-APPLICATION SERIALIZATION
# ============================================================
class KeyedLock:
    """asyncio locks keyed by string, dropped once nobody holds or waits on them."""

    def __init__(self):
        self._locks = {}
        self._users = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self):
        return len(self._locks)


_app_locks = KeyedLock()


# ============================================================
# RUN
# ============================================================
def _load_snapshot_files(app: dict) -> list:
    codebase_id = app.get("codebaseId")
    if not codebase_id:
        raise ValidationError("No codebase found for this app. Please import a repository first.")
    codebase = get_codebase(codebase_id)
    if codebase is None:
        raise NotFound("Codebase not found")
    files = codebase.get("files") or []
    if not files:
        raise ValidationError("Codebase is empty")
    return files


def _mark_failed(audit_id: str, message: str) -> None:
    try:
        db.update_doc("audits", audit_id, {
            "status": "failed", "error": message, "updatedAt": db.now_iso(),
        }, expect={"status": "running"})
    except StoreError as e:
        logger.error("Audit %s: could not record failure: %s", audit_id, e)
        raise InternalError(f"Failed to record audit failure: {e}") from e


async def run_audit(app_id: str, user_id: str, provider=None) -> dict:
    """Run one HIPAA audit for an application owned by user_id.

    Returns the normalized report plus auditId / complianceScore / status.
    Raises ValidationError, NotFound, Forbidden or InternalError.
    """
    if not app_id:
        raise ValidationError("appId is required")
    async with _app_locks.hold(app_id):
        try:
            return await _run_audit(app_id, user_id, provider or get_provider())
        except StoreError as e:
            logger.error("Audit for app %s aborted by store failure: %s", app_id, e)
            raise InternalError(f"Document store error: {e}") from e


async def _run_audit(app_id: str, user_id: str, provider) -> dict:
    app = get_owned_app(app_id, user_id)
    files = _load_snapshot_files(app)

    analyzed = files[:AUDIT_MAX_FILES]
    excluded = len(files) - len(analyzed)
    if excluded:
        logger.info("App %s: analyzing first %d of %d files, %d excluded",
                    app_id, len(analyzed), len(files), excluded)

    now = db.now_iso()
    audit = db.add_doc("audits", {
        "appId": app_id, "userId": user_id, "status": "running",
        "filesAnalyzed": len(analyzed), "filesExcluded": excluded,
        "createdAt": now, "updatedAt": now,
    })
    audit_id = audit["id"]
    repo_name = app.get("name") or "unknown"
    logger.info("Audit %s started for app %s (provider=%s)", audit_id, app_id,
                getattr(provider, "name", type(provider).__name__))

    try:
        prompt = build_audit_prompt(build_codebase_text(analyzed), repo_name, scan_date=now)
        raw = await provider.analyze(prompt)
        analysis = extract_json_object(raw)
    except (OracleError, ParseError) as e:
        logger.error("Audit %s failed: %s", audit_id, e)
        _mark_failed(audit_id, str(e))
        raise InternalError(f"Analysis failed: {e}") from e
    except Exception as e:
        logger.exception("Audit %s: unexpected provider error", audit_id)
        _mark_failed(audit_id, str(e) or type(e).__name__)
        raise InternalError(f"Analysis failed: {e}") from e

    report = normalize_analysis(analysis, repo_name, scan_date=now)
    score = overall_score(report)
    status = compliance_status(score)

    db.update_doc("audits", audit_id, {
        "status": "completed",
        "complianceScore": score,
        "complianceStatus": status,
        "metadata": report["metadata"],
        "scores": report["scores"],
        "summary": report["summary"],
        "detailedFindings": report["detailed_findings"],
        "metrics": report["metrics"],
        "remediationPlan": report["remediation_plan"],
        "actionsRequired": report["actions_required"],
        "componentAnalysis": report["component_analysis"],
        # Legacy fields for older dashboards
        "findings": report["detailed_findings"],
        "categories": legacy_categories(report["scores"]),
        "updatedAt": db.now_iso(),
    }, expect={"status": "running"})
    record_completed_audit(app_id, audit_id, score)
    logger.info("Audit %s completed: %.1f (%s)", audit_id, score, status)

    return {
        "auditId": audit_id,
        "complianceScore": score,
        "status": status,
        "metadata": report["metadata"],
        "scores": report["scores"],
        "summary": report["summary"],
        "findings": report["detailed_findings"],
        "metrics": report["metrics"],
        "remediationPlan": report["remediation_plan"],
        "actionsRequired": report["actions_required"],
        "componentAnalysis": report["component_analysis"],
        "filesAnalyzed": len(analyzed),
        "filesExcluded": excluded,
    }


# ============================================================
# HISTORY
# ============================================================
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _created_at(record: dict) -> datetime:
    try:
        created = datetime.fromisoformat(record.get("createdAt") or "")
    except (TypeError, ValueError):
        return _EPOCH
    return created if created.tzinfo else created.replace(tzinfo=timezone.utc)


def audit_summary(record: dict) -> dict:
    return {
        "id": record.get("id"),
        "complianceScore": record.get("complianceScore") or 0,
        "status": record.get("complianceStatus") or record.get("status") or "Unknown",
        "auditStatus": record.get("status"),
        "summary": record.get("summary") or {},
        "findings": record.get("detailedFindings") or record.get("findings") or [],
        "scores": record.get("scores") or {},
        "metrics": record.get("metrics") or {},
        "remediationPlan": record.get("remediationPlan") or [],
        "actionsRequired": record.get("actionsRequired") or {},
        "componentAnalysis": record.get("componentAnalysis") or {},
        "categories": record.get("categories") or {},
        "error": record.get("error"),
        "createdAt": record.get("createdAt"),
        "updatedAt": record.get("updatedAt"),
    }


def list_audit_history(app_id: str, user_id: str) -> list:
    """All audits of an owned application, newest first."""
    if not app_id:
        raise ValidationError("appId is required")
    try:
        get_owned_app(app_id, user_id)
        records = db.find_docs("audits", appId=app_id)
    except StoreError as e:
        raise InternalError(f"Document store error: {e}") from e
    records.sort(key=_created_at, reverse=True)
    return [audit_summary(r) for r in records]
