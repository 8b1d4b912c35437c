"""Poller error taxonomy and helpers."""

from __future__ import annotations

from botocore.exceptions import ClientError


class PollerError(RuntimeError):
    """Fatal poll failure surfaced to the scheduler as a reason code."""

    def __init__(self, code: str, detail: str | None = None) -> None:
        self.code = code
        self.detail = detail
        message = f"{code}:{detail}" if detail else code
        super().__init__(message)


class PollerConfigError(PollerError):
    """Raised when the poller profile or config is invalid."""


class CursorExpiredError(RuntimeError):
    """The stream service rejected a shard cursor as expired or invalid."""

    def __init__(self, shard_cursor: str, detail: str | None = None) -> None:
        self.shard_cursor = shard_cursor
        self.detail = detail
        super().__init__(f"CURSOR_EXPIRED:{detail}" if detail else "CURSOR_EXPIRED")


def reason_code(exc: BaseException) -> str:
    if isinstance(exc, PollerError):
        return exc.code
    if isinstance(exc, CursorExpiredError):
        return "CURSOR_EXPIRED"
    if isinstance(exc, ClientError):
        code = str(exc.response.get("Error", {}).get("Code") or "")
        if code:
            return code
    text = str(exc or "").strip()
    if text.isupper() and " " not in text:
        return text
    return exc.__class__.__name__


def error_detail(exc: BaseException) -> str:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Message") or "")[:256]
    return str(exc)[:256]
