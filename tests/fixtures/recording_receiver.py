"""Webhook endpoint double for httpx.MockTransport."""

from __future__ import annotations

from typing import Optional

import httpx


class RecordingReceiver:
    """Answers from a scripted list of status codes, then 200 forever."""

    def __init__(self, statuses: Optional[list[int]] = None) -> None:
        self.statuses = list(statuses or [])
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status, json={"ok": status < 400})
