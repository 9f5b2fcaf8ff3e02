"""
Scanara — HIPAA Compliance Audit Backend

Architecture:
  scanara/
  ├── config/    — Environment variables, feature flags, audit limits
  ├── errors/    — Error taxonomy mapped to HTTP status at the request boundary
  ├── db/        — Document store (apps, codebases, audits), file or PostgreSQL
  ├── auth/      — JWT bearer token verification
  ├── apps/      — Application records, codebase snapshots, ownership checks
  ├── analysis/  — Audit prompt, JSON-in-prose extraction, result normalization
  ├── oracle/    — Analysis providers (Anthropic API, deterministic mock)
  ├── audits/    — Audit orchestrator: run lifecycle + history
  └── server.py  — FastAPI routing layer

Each module is self-contained with clear imports and no circular dependencies.
"""
