"""
Scanara — Applications & Codebase Snapshots

An application is a tracked project owned exclusively by the identity that
created it. It points at one codebase snapshot (an immutable list of
{path, content} files) and at its most recent completed audit.
"""
import logging

from scanara import db
from scanara.errors import ValidationError, NotFound, Forbidden

logger = logging.getLogger(__name__)


# ============================================================
# APPLICATIONS
# ============================================================
def create_app(user_id: str, name: str) -> dict:
    """Create a new application owned by user_id. Returns the app record."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    now = db.now_iso()
    app = db.add_doc("apps", {
        "userId": user_id,
        "name": name,
        "codebaseId": None,
        "latestAuditId": None,
        "latestAuditScore": None,
        "createdAt": now,
        "updatedAt": now,
    })
    logger.info("App %s created for user %s", app["id"], user_id)
    return app


def list_apps(user_id: str) -> list:
    apps = db.find_docs("apps", userId=user_id)
    apps.sort(key=lambda a: a.get("createdAt") or "", reverse=True)
    return apps


def get_owned_app(app_id: str, user_id: str) -> dict:
    """Resolve an application and check the caller owns it."""
    app = db.get_doc("apps", app_id)
    if app is None:
        raise NotFound("App not found")
    if app.get("userId") != user_id:
        raise Forbidden("You do not have access to this app")
    return app


def record_completed_audit(app_id: str, audit_id: str, score: float) -> dict:
    """Point the application at its most recently completed audit."""
    return db.update_doc("apps", app_id, {
        "latestAuditId": audit_id,
        "latestAuditScore": score,
        "updatedAt": db.now_iso(),
    })


# ============================================================
# CODEBASE SNAPSHOTS
# ============================================================
def _clean_files(files) -> list:
    if not isinstance(files, list) or not files:
        raise ValidationError("files must be a non-empty list")
    cleaned = []
    for i, f in enumerate(files):
        if not isinstance(f, dict):
            raise ValidationError(f"files[{i}] must be an object with path and content")
        path = f.get("path")
        if not isinstance(path, str) or not path.strip():
            raise ValidationError(f"files[{i}].path is required")
        content = f.get("content")
        if content is None:
            content = ""
        if not isinstance(content, str):
            raise ValidationError(f"files[{i}].content must be a string")
        cleaned.append({"path": path, "content": content})
    return cleaned


def attach_codebase(app_id: str, user_id: str, files, repo: str = None) -> dict:
    """Store a new snapshot for the app and make it the app's current codebase."""
    app = get_owned_app(app_id, user_id)
    snapshot = db.add_doc("codebases", {
        "appId": app_id,
        "userId": user_id,
        "repo": repo or app.get("name") or "unknown",
        "files": _clean_files(files),
        "createdAt": db.now_iso(),
    })
    db.update_doc("apps", app_id, {"codebaseId": snapshot["id"], "updatedAt": db.now_iso()})
    logger.info("Codebase %s (%d files) attached to app %s",
                snapshot["id"], len(snapshot["files"]), app_id)
    return snapshot


def get_codebase(codebase_id: str):
    return db.get_doc("codebases", codebase_id)
