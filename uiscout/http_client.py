from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib.error import URLError
from urllib.request import Request, urlopen


class HttpClientError(Exception):
    def __init__(self, message: str, *, reason: BaseException | None = None) -> None:
        super().__init__(message)
        self.reason = reason

    @property
    def refused(self) -> bool:
        return isinstance(self.reason, ConnectionRefusedError)

    @property
    def timed_out(self) -> bool:
        return isinstance(self.reason, TimeoutError)


def http_get_json(url: str, timeout: float = 2.0) -> Any:
    """Fetch JSON from a loopback debugging endpoint."""
    req = Request(url, headers={"User-Agent": "uiscout/1.0"})
    try:
        with urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read().decode("utf-8", errors="replace") or "null")
    except URLError as exc:
        reason = exc.reason if isinstance(exc.reason, BaseException) else None
        raise HttpClientError(str(exc), reason=reason) from exc
    except (TimeoutError, OSError) as exc:
        raise HttpClientError(str(exc) or type(exc).__name__, reason=exc) from exc
    except ValueError as exc:
        raise HttpClientError(f"invalid JSON from {url}: {exc}") from exc


async def fetch_json(url: str, timeout: float = 2.0) -> Any:
    return await asyncio.to_thread(http_get_json, url, timeout)
