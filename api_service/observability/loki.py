from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import httpx


class LokiHandler(logging.Handler):
    """Push already-formatted log lines to Grafana Loki.

    Delivery is best effort: a failed push is reported once to ``fallback``
    (stderr by default) and dropped. The report re-arms after the next push
    that succeeds. Run this behind a QueueListener so pushes stay off the
    request path.
    """

    def __init__(
        self,
        url: str,
        labels: dict[str, str],
        *,
        timeout: float = 2.0,
        client: httpx.Client | None = None,
        fallback: TextIO | None = None,
    ) -> None:
        super().__init__()
        self.url = url
        self.labels = dict(labels)
        self._client = client or httpx.Client(timeout=timeout)
        self._fallback = fallback
        self._reported = False

    def build_payload(self, record: logging.LogRecord) -> dict[str, Any]:
        stream = {**self.labels, "level": record.levelname.lower()}
        timestamp_ns = str(int(record.created * 1_000_000_000))
        return {"streams": [{"stream": stream, "values": [[timestamp_ns, record.getMessage()]]}]}

    def emit(self, record: logging.LogRecord) -> None:
        try:
            payload = self.build_payload(record)
        except Exception:
            self.handleError(record)
            return

        try:
            response = self._client.post(self.url, json=payload)
            response.raise_for_status()
        except Exception as exc:
            # Transport errors, HTTP status errors and httpx.InvalidURL alike;
            # nothing may escape into the queue listener thread.
            self._report(exc)
            return

        self._reported = False

    def _report(self, exc: Exception) -> None:
        if self._reported:
            return
        self._reported = True
        stream = self._fallback or sys.stderr
        try:
            print(f"Loki connection error: {exc}", file=stream)
        except Exception:
            # Nowhere left to report to.
            pass

    def close(self) -> None:
        try:
            self._client.close()
        finally:
            super().close()
