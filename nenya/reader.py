"""A reader that rewrites server-sent-event lines as they stream through."""

from __future__ import annotations

import json
import math
from typing import Any, BinaryIO, Callable, Iterable, Iterator, Optional, Union

from nenya.filter import (
    FilterAction,
    StreamBlockedError,
    StreamFilter,
    extract_delta_content_from_map,
    replace_delta_content_map,
)

SSE_SCANNER_MAX_BUF = 1024 * 1024

_DATA_PREFIX = b"data: "

UsageCallback = Callable[[int, int, int], None]
ChunkFunction = Callable[[bytes], bytes]


class ResponseTransformer:
    """Rewrites one chunk of response data with a chunk function.

    Without a function, chunks pass through as they are. Subclasses may
    override transform_sse_chunk instead of passing a function.
    """

    def __init__(self, func: Optional[ChunkFunction] = None) -> None:
        self._func = func

    def transform_sse_chunk(self, data: bytes) -> bytes:
        """Return the transformed chunk; raise to keep the original line."""
        if self._func is None:
            return data
        result = self._func(data)
        if not isinstance(result, (bytes, bytearray)):
            raise TypeError("chunk function must return bytes")
        return bytes(result)


def to_int(value: Any) -> int:
    """Convert a JSON number to int, truncating floats; anything else is 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return 0


def _parse_object(data: bytes) -> Optional[dict[str, Any]]:
    if not data.strip().startswith(b"{"):
        return None
    try:
        parsed = json.loads(data)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


class SSETransformingReader:
    """Reads SSE lines from a binary source, filtering and transforming each.

    Every line is emitted with a trailing newline. When the stream filter
    blocks, reading raises StreamBlockedError, now and on every later read.
    """

    def __init__(
        self,
        src: Union[BinaryIO, Iterable[bytes]],
        transformer: Optional[ResponseTransformer] = None,
        on_usage: Optional[UsageCallback] = None,
        stream_filter: Optional[StreamFilter] = None,
    ) -> None:
        self._source = iter(src)
        self.transformer = transformer
        self.on_usage = on_usage
        self.stream_filter = stream_filter
        self._buffer = b""
        self._failure: Optional[Exception] = None
        self._usage_fired = False

    def read(self, size: Optional[int] = -1) -> bytes:
        """Read up to size bytes, or everything when size is negative."""
        if size is None or size < 0:
            parts = [self._buffer]
            self._buffer = b""
            while (line := self._next_line()) is not None:
                parts.append(line)
            return b"".join(parts)
        if size == 0:
            return b""
        if not self._buffer:
            line = self._next_line()
            if line is None:
                return b""
            self._buffer = line
        chunk, self._buffer = self._buffer[:size], self._buffer[size:]
        return chunk

    def __iter__(self) -> Iterator[bytes]:
        if self._buffer:
            pending, self._buffer = self._buffer, b""
            yield pending
        while (line := self._next_line()) is not None:
            yield line

    def _fail(self, error: Exception) -> None:
        self._failure = error
        raise error

    def _next_line(self) -> Optional[bytes]:
        if self._failure is not None:
            raise self._failure
        try:
            raw = next(self._source)
        except StopIteration:
            return None
        line = raw[:-1] if raw.endswith(b"\n") else raw
        if line.endswith(b"\r"):
            line = line[:-1]
        if len(line) >= SSE_SCANNER_MAX_BUF:
            self._fail(ValueError("SSE line exceeds maximum length"))

        transformed = self._transform_line(line)
        if self.stream_filter is not None and self.stream_filter.is_blocked():
            self._fail(StreamBlockedError())
        if not transformed.endswith(b"\n"):
            transformed += b"\n"
        return transformed

    def _apply_transformer(self, data: bytes) -> Optional[bytes]:
        try:
            return self.transformer.transform_sse_chunk(data)  # type: ignore[union-attr]
        except Exception:
            return None

    def _transform_line(self, line: bytes) -> bytes:
        if not line:
            return line

        if line.startswith(_DATA_PREFIX):
            orig = line[len(_DATA_PREFIX):]
            if not orig or orig == b"[DONE]":
                return line

            data = orig
            parsed = _parse_object(data)

            sf = self.stream_filter
            if sf is not None and not sf.is_blocked() and parsed is not None:
                content = extract_delta_content_from_map(parsed)
                if content:
                    redacted, action, _ = sf.filter_content(content)
                    if action == FilterAction.BLOCK:
                        return line
                    if action == FilterAction.REDACT and redacted != content:
                        data = replace_delta_content_map(parsed, redacted)

            if self.on_usage is not None and not self._usage_fired and parsed is not None:
                self._extract_usage(parsed)

            if self.transformer is None:
                return line if data == orig else _DATA_PREFIX + data

            transformed = self._apply_transformer(data)
            if transformed is None:
                return line
            if transformed == orig and data == orig:
                return line
            return _DATA_PREFIX + transformed

        trimmed = line.strip()
        if trimmed[:1] in (b"{", b"["):
            if self.transformer is None:
                return line
            transformed = self._apply_transformer(trimmed)
            if transformed is None or transformed == trimmed:
                return line
            return transformed

        return line

    def _extract_usage(self, chunk: dict[str, Any]) -> None:
        usage = chunk.get("usage")
        if not isinstance(usage, dict):
            return
        completion = to_int(usage.get("completion_tokens"))
        prompt = to_int(usage.get("prompt_tokens"))
        total = to_int(usage.get("total_tokens"))
        if completion == 0 and prompt == 0 and total == 0:
            return
        self._usage_fired = True
        assert self.on_usage is not None
        self.on_usage(completion, prompt, total)