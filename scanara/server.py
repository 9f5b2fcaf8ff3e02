"""
Scanara — HIPAA Compliance Audit Backend
FastAPI routing layer: applications, codebase import, audit run + history.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from scanara.config import PRODUCT_NAME, VERSION, PORT, LOG_LEVEL, CORS_ORIGINS, USE_REAL_API
from scanara.errors import ScanaraError, ValidationError, InternalError, StoreError
from scanara.auth import get_current_user
from scanara.apps import create_app, list_apps, attach_codebase
from scanara.audits import run_audit, list_audit_history

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title=PRODUCT_NAME, version=VERSION)
app.add_middleware(CORSMiddleware, allow_origins=CORS_ORIGINS, allow_credentials=True,
                   allow_methods=["*"], allow_headers=["*"])


# ============================================================
# ERROR BOUNDARY
# ============================================================
@app.exception_handler(ScanaraError)
async def scanara_error_handler(request: Request, exc: ScanaraError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg") or "Invalid request"
    message = f"{field}: {message}" if field else f"Request body: {message}"
    return JSONResponse(status_code=400, content=ValidationError(message).to_dict())

@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error("%s %s store failure: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content=InternalError(f"Document store error: {exc}").to_dict())

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("%s %s unhandled error", request.method, request.url.path)
    return JSONResponse(status_code=500, content=InternalError(str(exc) or "Unexpected error").to_dict())


# ============================================================
# REQUEST BODIES
# ============================================================
class CreateAppBody(BaseModel):
    name: Optional[str] = None

class CodebaseBody(BaseModel):
    files: Optional[list] = None
    repo: Optional[str] = None

class RunAuditBody(BaseModel):
    appId: Optional[str] = None


# ============================================================
# ROUTES
# ============================================================
@app.get("/api/health")
async def health():
    return {"status": "ok", "product": PRODUCT_NAME,
            "oracle": "connected" if USE_REAL_API else "mock_mode", "version": VERSION}

@app.post("/api/apps")
async def create_app_endpoint(body: CreateAppBody, user: dict = Depends(get_current_user)):
    return {"success": True, "app": create_app(user["uid"], body.name)}

@app.get("/api/apps")
async def list_apps_endpoint(user: dict = Depends(get_current_user)):
    return {"success": True, "apps": list_apps(user["uid"])}

@app.post("/api/apps/{app_id}/codebase")
async def import_codebase(app_id: str, body: CodebaseBody, user: dict = Depends(get_current_user)):
    snapshot = attach_codebase(app_id, user["uid"], body.files, body.repo)
    return {"success": True, "codebaseId": snapshot["id"], "fileCount": len(snapshot["files"])}

@app.post("/api/audit/run")
async def run_audit_endpoint(body: RunAuditBody, user: dict = Depends(get_current_user)):
    result = await run_audit(body.appId, user["uid"])
    return {"success": True, **result, "message": "Audit completed successfully"}

@app.get("/api/audit/history/{app_id}")
async def audit_history_endpoint(app_id: str, user: dict = Depends(get_current_user)):
    return {"success": True, "audits": list_audit_history(app_id, user["uid"])}


def main():
    import uvicorn
    logger.info("Starting %s v%s on port %d", PRODUCT_NAME, VERSION, PORT)
    logger.info("Analysis oracle: %s", "Anthropic API" if USE_REAL_API else "Mock Mode")
    uvicorn.run(app, host="0.0.0.0", port=PORT)

if __name__ == "__main__":
    main()
