"""Content filtering for streamed completion deltas: secret redaction and blocking."""

from __future__ import annotations

import enum
import json
import re
from typing import Any, Iterable, Pattern, Union

DEFAULT_WINDOW_SIZE = 4096

PatternLike = Union[str, Pattern[str]]

_JSON_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


class FilterAction(enum.IntEnum):
    """Outcome of filtering one piece of streamed content."""

    PASS = 0
    REDACT = 1
    BLOCK = 2


class StreamBlockedError(Exception):
    """Raised when a stream is stopped by the execution policy."""

    def __init__(self, message: str = "stream blocked by execution policy") -> None:
        super().__init__(message)


def _compile_all(patterns: Iterable[PatternLike] | None) -> list[Pattern[str]]:
    if not patterns:
        return []
    return [re.compile(p) if isinstance(p, str) else p for p in patterns]


class StreamFilter:
    """Redacts secrets and blocks forbidden content across streamed chunks.

    A sliding window of recent text lets matches that span chunk
    boundaries be detected. Once blocked, the filter stays blocked.
    """

    def __init__(
        self,
        secret_patterns: Iterable[PatternLike] | None = None,
        block_patterns: Iterable[PatternLike] | None = None,
        redact_label: str = "",
        window_size: int = 0,
    ) -> None:
        self._secret_patterns = _compile_all(secret_patterns)
        self._block_patterns = _compile_all(block_patterns)
        self._redact_label = redact_label
        self._window_size = window_size if window_size > 0 else DEFAULT_WINDOW_SIZE
        self._window = ""
        self._window_len = 0
        self._blocked = False
        self._block_reason = ""

    def filter_content(self, content: str) -> tuple[str, FilterAction, str]:
        """Filter one chunk; return (content, action, block reason)."""
        if self._blocked:
            return content, FilterAction.BLOCK, self._block_reason
        if not content:
            return content, FilterAction.PASS, ""

        for pattern in self._block_patterns:
            if pattern.search(content):
                self._block(pattern)
                return content, FilterAction.BLOCK, self._block_reason

        prev_window_len = self._window_len
        self._append_to_window(content)

        if self._check_window_block():
            return content, FilterAction.BLOCK, self._block_reason

        redacted = content
        was_redacted = False
        for pattern in self._secret_patterns:
            redacted, count = pattern.subn(self._label, redacted)
            if count:
                was_redacted = True
        if was_redacted:
            return redacted, FilterAction.REDACT, ""

        if not self._window_has_secret():
            return content, FilterAction.PASS, ""

        redacted = content
        window = self._window
        for pattern in self._secret_patterns:
            for match in pattern.finditer(window):
                start = max(match.start() - prev_window_len, 0)
                end = min(match.end() - prev_window_len, len(content))
                if start < len(content) and end > start:
                    redacted = content[:start] + self._redact_label + content[end:]
                    content = redacted
        if self._redact_label in redacted:
            return redacted, FilterAction.REDACT, ""
        return content, FilterAction.PASS, ""

    def is_blocked(self) -> bool:
        """Whether a block pattern has matched."""
        return self._blocked

    def window_content(self) -> str:
        """Text currently held in the sliding window."""
        return self._window

    def window_len(self) -> int:
        """Tracked length of the sliding window."""
        return self._window_len

    def _label(self, _match: re.Match[str]) -> str:
        return self._redact_label

    def _block(self, pattern: Pattern[str]) -> None:
        self._blocked = True
        self._block_reason = pattern.pattern

    def _append_to_window(self, text: str) -> None:
        total = self._window_len + len(text)
        if total <= self._window_size:
            self._window += text
            self._window_len = total
            return
        drop = total - self._window_size
        kept = self._window[drop:] if drop < self._window_len else ""
        self._window = kept + text
        self._window_len = self._window_size

    def _check_window_block(self) -> bool:
        if not self._block_patterns or self._window_len == 0:
            return False
        for pattern in self._block_patterns:
            if pattern.search(self._window):
                self._block(pattern)
                return True
        return False

    def _window_has_secret(self) -> bool:
        if not self._secret_patterns or self._window_len == 0:
            return False
        return any(p.search(self._window) for p in self._secret_patterns)


def encode_json(obj: Any) -> bytes:
    """Encode compactly with sorted keys and HTML-safe escaping."""
    text = json.dumps(obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    for char, escaped in _JSON_ESCAPES:
        text = text.replace(char, escaped)
    return text.encode("utf-8")


def parse_sse_chunk(data: bytes | str | None) -> dict[str, Any] | None:
    """Parse a JSON object; return None for anything else."""
    if not data:
        return None
    try:
        chunk = json.loads(data)
    except (ValueError, TypeError):
        return None
    return chunk if isinstance(chunk, dict) else None


def _first_delta(chunk: Any) -> dict[str, Any] | None:
    if not isinstance(chunk, dict):
        return None
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    delta = choice.get("delta")
    return delta if isinstance(delta, dict) else None


def extract_delta_content_from_map(chunk: dict[str, Any] | None) -> str:
    """Return choices[0].delta.content, or an empty string."""
    delta = _first_delta(chunk)
    if delta is None:
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


def extract_delta_content(data: bytes | str | None) -> str:
    """Parse a chunk and return its first delta's content."""
    return extract_delta_content_from_map(parse_sse_chunk(data))


def replace_delta_content_map(chunk: dict[str, Any], new_content: str) -> bytes:
    """Set choices[0].delta.content in place and encode the chunk."""
    delta = _first_delta(chunk)
    if delta is not None:
        delta["content"] = new_content
    return encode_json(chunk)


def replace_delta_content(data: bytes, new_content: str) -> bytes:
    """Replace the first delta's content; return data unchanged if not JSON."""
    chunk = parse_sse_chunk(data)
    if chunk is None:
        return data
    return replace_delta_content_map(chunk, new_content)