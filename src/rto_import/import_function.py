"""Serverless CSV import entry point.
Author: Sunil Paudel

Request body: {"bucket", "path", "companyId"?, "dry_run"?}. The CSV at
bucket/path is downloaded, normalized and reconciled (RTOs, qualifications,
units, qualification units, draft offers). dry_run stops after parsing and
performs no writes.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from .config import Settings
from .errors import BlobNotFoundError, ImportFormatError, ReconcileError, StorageError
from .reconcile import QUALIFICATION_SCHEMA, reconcile
from .storage import storage_from_settings
from .workflow import open_store, options_from_settings, parse_uploaded_csv

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}


def _error(status: int, message: str) -> Tuple[int, Dict[str, Any]]:
    return status, {"error": message}


def handle_import(
    payload: Optional[Mapping[str, Any]],
    *,
    store: Any,
    storage: Any,
    settings: Optional[Settings] = None,
) -> Tuple[int, Dict[str, Any]]:
    """Run one import request. Returns (http_status, json_body); never raises for pipeline errors."""
    settings = settings or Settings()
    payload = payload or {}
    bucket = str(payload.get("bucket") or "").strip()
    path = str(payload.get("path") or "").strip()
    company_id = payload.get("companyId") or None
    dry_run = bool(payload.get("dry_run", False))

    if not bucket or not path:
        return _error(400, "bucket and path required")

    try:
        data = storage.download(bucket, path)
    except BlobNotFoundError:
        return _error(404, "File not found")
    except StorageError as exc:
        logger.error("download failed: %s", exc)
        return _error(500, str(exc))

    try:
        parsed = parse_uploaded_csv(data)
    except ImportFormatError as exc:
        return _error(400, str(exc))

    records = [r for r in parsed.records if r.qualification_code and r.unit_code]
    if not records:
        return 200, {"ok": True, "summary": {"rows": 0}}

    seen = {
        "rows": len(records),
        "quals_seen": len({r.qualification_code for r in records}),
        "units_seen": len({r.unit_code for r in records}),
        "rtos_seen": len({r.rto_code for r in records if r.rto_code}),
    }
    if dry_run:
        return 200, {"ok": True, "dry_run": True, "summary": seen}

    options = options_from_settings(settings, schema=QUALIFICATION_SCHEMA, company_id=company_id)
    try:
        summary = reconcile(records, store, options)
    except ReconcileError as exc:
        return _error(500, str(exc))

    logger.info("import of %s/%s done: %s", bucket, path, summary.to_dict())
    return 200, {
        "ok": True,
        "summary": {
            "rows": seen["rows"],
            "rtos_seen": seen["rtos_seen"],
            "quals_seen": seen["quals_seen"],
            "units_seen": seen["units_seen"],
            "offers_inserted": summary.offers_created,
        },
    }


def cors_headers(origin: str, allowed: Optional[list] = None) -> Dict[str, str]:
    allowed = allowed or ["*"]
    if allowed == ["*"]:
        allow_origin = "*"
    else:
        allow_origin = origin if origin in allowed else "null"
    return {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Max-Age": "86400",
        "Vary": "Origin",
    }


def _load_body(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, Mapping):
        return dict(raw)
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return body if isinstance(body, dict) else {}


def handler(
    event: Mapping[str, Any],
    context: Any = None,
    *,
    store: Any = None,
    storage: Any = None,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """HTTP-style wrapper: {httpMethod, headers, body} -> {statusCode, headers, body}."""
    settings = settings or Settings.from_env()
    headers = {str(k).lower(): v for k, v in (event.get("headers") or {}).items()}
    cors = cors_headers(str(headers.get("origin") or ""), settings.allowed_origins)
    method = str(event.get("httpMethod") or "POST").upper()

    if method == "OPTIONS":
        return {"statusCode": 204, "headers": cors, "body": ""}
    if method != "POST":
        status, body = _error(405, "POST only")
    else:
        try:
            status, body = handle_import(
                _load_body(event.get("body")),
                store=store if store is not None else open_store(settings),
                storage=storage if storage is not None else storage_from_settings(settings),
                settings=settings,
            )
        except Exception as exc:
            logger.exception("import failed")
            status, body = _error(500, str(exc))
    return {"statusCode": status, "headers": {**cors, **JSON_HEADERS}, "body": json.dumps(body)}
