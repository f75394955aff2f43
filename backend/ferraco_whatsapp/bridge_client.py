"""REST helpers for the backend WhatsApp bridge routes (``/api/whatsapp``).

The event channel tells us what changes; these calls ask for the current
picture, and let an operator reinitialize or drop the bridge session.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ferraco_whatsapp.state import Account

logger = logging.getLogger(__name__)

API_PREFIX = "/api/whatsapp"


def _base_status(base_url: str | None) -> dict:
    base = (base_url or "").strip().rstrip("/")
    configured = bool(base)
    return {
        "configured": configured,
        "base_url": base if configured else None,
        "reachable": False,
        "connected": False,
        "has_qr": False,
        "state": "not_configured" if not configured else "unreachable",
        "message": None,
        "error": None,
    }


def _url(base_url: str, path: str) -> str:
    return f"{base_url.strip().rstrip('/')}{API_PREFIX}{path}"


async def _request(
    method: str,
    base_url: str,
    path: str,
    *,
    token: str | None = None,
    timeout_s: float = 4.0,
) -> tuple[int, dict]:
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    async with httpx.AsyncClient(timeout=timeout_s) as client:
        response = await client.request(method, _url(base_url, path), headers=headers)
        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        return response.status_code, payload


async def get_bridge_status(
    base_url: str | None,
    *,
    token: str | None = None,
    timeout_s: float = 4.0,
) -> dict:
    """Return normalized bridge status for UI/CLI. Never raises."""
    status = _base_status(base_url)
    base = status["base_url"]
    if not base:
        status["error"] = "Backend URL not set. Add FERRACO_BACKEND_URL in backend/.env (e.g. http://localhost:3000)."
        return status

    try:
        code, payload = await _request("GET", base, "/status", token=token, timeout_s=timeout_s)
    except Exception as exc:
        logger.info("Bridge status request failed: %s", exc)
        status["error"] = f"Cannot reach backend at {base}"
        return status

    if code != 200:
        status["error"] = f"Backend returned HTTP {code}"
        return status
    body = payload.get("status")
    if not payload.get("success") or not isinstance(body, dict):
        status["error"] = "Backend returned invalid status payload"
        return status

    status["reachable"] = True
    status["connected"] = bool(body.get("connected"))
    status["has_qr"] = bool(body.get("hasQR"))
    status["message"] = body.get("message")
    if status["connected"]:
        status["state"] = "connected"
    elif status["has_qr"]:
        status["state"] = "awaiting_qr"
    else:
        status["state"] = "initializing"
    return status


async def fetch_qr_code(base_url: str, *, token: str | None = None, timeout_s: float = 4.0) -> str | None:
    """Current QR data URI, or None when the bridge has none to show."""
    try:
        code, payload = await _request("GET", base_url, "/qr", token=token, timeout_s=timeout_s)
    except Exception as exc:
        logger.info("QR request failed: %s", exc)
        return None
    if code != 200 or not payload.get("success"):
        return None
    qr = payload.get("qrCode")
    return str(qr) if qr else None


async def fetch_account(base_url: str, *, token: str | None = None, timeout_s: float = 4.0) -> Account | None:
    try:
        code, payload = await _request("GET", base_url, "/account", token=token, timeout_s=timeout_s)
    except Exception as exc:
        logger.info("Account request failed: %s", exc)
        return None
    account: Any = payload.get("account")
    if code != 200 or not payload.get("success") or not isinstance(account, dict):
        return None
    return Account.from_payload(account)


async def _post_action(path: str, base_url: str, token: str | None, timeout_s: float) -> bool:
    try:
        code, payload = await _request("POST", base_url, path, token=token, timeout_s=timeout_s)
    except Exception as exc:
        logger.warning("POST %s failed: %s", path, exc)
        return False
    ok = code == 200 and bool(payload.get("success"))
    if not ok:
        logger.warning("POST %s rejected (HTTP %s): %s", path, code, payload.get("message") or payload.get("error"))
    return ok


async def reinitialize_bridge(base_url: str, *, token: str | None = None, timeout_s: float = 4.0) -> bool:
    """Ask the backend to restart the bridge; a new QR follows on the event channel."""
    return await _post_action("/reinitialize", base_url, token, timeout_s)


async def disconnect_bridge(base_url: str, *, token: str | None = None, timeout_s: float = 4.0) -> bool:
    return await _post_action("/disconnect", base_url, token, timeout_s)
