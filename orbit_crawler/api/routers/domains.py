"""Domain risk endpoints.

Routes
------
GET /domains              → all records, riskiest first
GET /domains/{hostname}   → one record
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

router = APIRouter()


def _record_response(tracker, record) -> dict[str, Any]:  # type: ignore[no-untyped-def]
    data = record.to_dict()
    data["recommended_mode"] = tracker.recommended_mode(record.hostname)
    return data


@router.get("")
def list_domains_endpoint(request: Request) -> list[dict[str, Any]]:
    tracker = request.app.state.risk_tracker
    return [_record_response(tracker, r) for r in tracker.list_records()]


@router.get("/{hostname}")
def get_domain_endpoint(hostname: str, request: Request) -> dict[str, Any]:
    """Return the risk record for *hostname* (``www.`` and case are ignored)."""
    tracker = request.app.state.risk_tracker
    record = tracker.get_record(hostname)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No risk record for {hostname!r}")
    return _record_response(tracker, record)
