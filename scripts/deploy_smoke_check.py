"""Post-deploy smoke checks executed from the app container."""

from __future__ import annotations

import json
import os
import urllib.error
import urllib.request
from datetime import date

from app.core.security import create_access_token

BASE_URL = os.getenv("SMOKE_BASE_URL", "http://localhost:8000").rstrip("/")


def request(
    path: str,
    *,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    expected: int = 200,
) -> bytes:
    req_headers = {"Accept": "application/json"}
    if headers:
        req_headers.update(headers)

    request_obj = urllib.request.Request(f"{BASE_URL}{path}", method=method, headers=req_headers)
    try:
        with urllib.request.urlopen(request_obj, timeout=30) as response:
            content = response.read()
            status = response.getcode()
    except urllib.error.HTTPError as exc:  # pragma: no cover - runtime smoke script
        if exc.code == expected:
            return exc.read()
        body_text = exc.read().decode("utf-8", errors="ignore")
        raise RuntimeError(f"{method} {path} -> {exc.code}: {body_text}") from exc

    if status != expected:
        raise RuntimeError(f"{method} {path} -> {status}, expected {expected}")
    return content


def main() -> None:
    for endpoint in ["/health", "/ready", "/docs", "/metrics"]:
        request(endpoint, expected=200)

    today = date.today()
    month_payload = json.loads(request(f"/api/availability?year={today.year}&month={today.month}"))
    if not month_payload.get("success"):
        raise RuntimeError(f"Availability listing failed: {month_payload}")

    request("/api/bookings/my", expected=401)
    token = create_access_token(subject="0", role="student")
    request("/api/bookings/my?limit=1", headers={"Authorization": f"Bearer {token}"}, expected=200)

    print("Smoke checks passed.")


if __name__ == "__main__":
    main()
