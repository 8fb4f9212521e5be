import io
import json
import re

import pytest

from nenya.filter import StreamBlockedError, StreamFilter
from nenya.reader import ResponseTransformer, SSETransformingReader, to_int


class Upper(ResponseTransformer):
    def transform_sse_chunk(self, data):
        return data.upper()


class Failing(ResponseTransformer):
    def transform_sse_chunk(self, data):
        raise RuntimeError("boom")


def make_reader(text, **kwargs):
    return SSETransformingReader(io.BytesIO(text.encode()), ResponseTransformer(), **kwargs)


def test_data_lines():
    text = (
        'data: {"choices":[{"delta":{"content":"hello"}}]}\n'
        ' data: {"choices":[{"delta":{"content":" world"}}]}\n'
        " data: [DONE]\n"
        " "
    )
    output = make_reader(text).read().decode()
    assert output == text + "\n"
    assert "data: [DONE]\n" in output


def test_non_sse_json():
    text = '{"choices":[{"delta":{"content":"raw json"}}]}\n'
    output = make_reader(text).read()
    parsed = json.loads(output)
    assert parsed["choices"][0]["delta"]["content"] == "raw json"


def test_empty_lines_and_comments():
    text = (
        ": this is a comment\n"
        "\n"
        'data: {"choices":[{"delta":{"content":"hi"}}]}\n'
        "\n"
        ": another comment\n"
    )
    output = make_reader(text).read().decode()
    assert output == text
    assert output.count("\n\n") >= 2


def test_stream_filter_block():
    sf = StreamFilter(None, [re.compile(r"(?i)rm\s+-rf")], "[REDACTED]", 4096)
    reader = make_reader(
        'data: {"choices":[{"delta":{"content":"run rm -rf / now"}}]}\n', stream_filter=sf
    )
    with pytest.raises(StreamBlockedError):
        reader.read()
    with pytest.raises(StreamBlockedError):
        reader.read(10)


def test_stream_filter_block_after_earlier_lines():
    sf = StreamFilter(None, [re.compile(r"forbidden")], "", 4096)
    reader = make_reader(
        ": ok\n" 'data: {"choices":[{"delta":{"content":"forbidden"}}]}\n', stream_filter=sf
    )
    lines = iter(reader)
    assert next(lines) == b": ok\n"
    with pytest.raises(StreamBlockedError):
        next(lines)


def test_stream_filter_redact():
    sf = StreamFilter([re.compile(r"\bsecret\b")], None, "[SECRET]", 4096)
    reader = make_reader(
        'data: {"choices":[{"delta":{"content":"key is secret end"}}]}\n', stream_filter=sf
    )
    output = reader.read()
    assert output == b'data: {"choices":[{"delta":{"content":"key is [SECRET] end"}}]}\n'
    assert b"secret" not in output


def test_on_usage_callback():
    text = (
        'data: {"choices":[{"delta":{"content":"hi"}}]}\n'
        'data: {"choices":[],"usage":{"completion_tokens":10,"prompt_tokens":5,"total_tokens":15}}\n'
    )
    calls = []
    make_reader(text, on_usage=lambda c, p, t: calls.append((c, p, t))).read()
    assert calls == [(10, 5, 15)]


def test_on_usage_fires_once():
    text = (
        'data: {"usage":{"completion_tokens":1,"prompt_tokens":2,"total_tokens":3}}\n'
        'data: {"usage":{"completion_tokens":4,"prompt_tokens":5,"total_tokens":9}}\n'
    )
    calls = []
    make_reader(text, on_usage=lambda c, p, t: calls.append((c, p, t))).read()
    assert calls == [(1, 2, 3)]


@pytest.mark.parametrize(
    "text",
    [
        'data: {"choices":[{"delta":{"content":"hi"}}]}\ndata: {"choices":[{"delta":{"content":"bye"}}]}\n',
        'data: {"usage":"not a map"}\n',
        'data: {"usage":{"completion_tokens":"bad","prompt_tokens":"bad","total_tokens":"bad"}}\n',
        'data: {"choices":[]}\n',
        'data: {"usage":{"completion_tokens":0,"prompt_tokens":0,"total_tokens":0}}\n',
    ],
)
def test_on_usage_not_fired(text):
    calls = []
    output = make_reader(text, on_usage=lambda c, p, t: calls.append((c, p, t))).read()
    assert calls == []
    assert output == text.encode()


def test_transformer_rewrites_data_line():
    reader = SSETransformingReader(io.BytesIO(b'data: {"a":"b"}\n'), Upper())
    assert reader.read() == b'data: {"A":"B"}\n'


def test_transformer_rewrites_bare_json_without_prefix():
    reader = SSETransformingReader(io.BytesIO(b'  {"a":"b"}  \n'), Upper())
    assert reader.read() == b'{"A":"B"}\n'


def test_failing_transformer_keeps_line():
    reader = SSETransformingReader(io.BytesIO(b'data: {"a":"b"}\n{"c":1}\n'), Failing())
    assert reader.read() == b'data: {"a":"b"}\n{"c":1}\n'


def test_no_transformer_passes_through():
    reader = SSETransformingReader(io.BytesIO(b'data: {"a":"b"}\n[1]\n'))
    assert reader.read() == b'data: {"a":"b"}\n[1]\n'


def test_crlf_stripped():
    reader = SSETransformingReader(io.BytesIO(b"data: [DONE]\r\n"))
    assert reader.read() == b"data: [DONE]\n"


def test_small_reads_reassemble():
    text = b": one\ndata: [DONE]\n"
    reader = SSETransformingReader(io.BytesIO(text))
    parts = []
    while chunk := reader.read(3):
        assert len(chunk) <= 3
        parts.append(chunk)
    assert b"".join(parts) == text
    assert reader.read(3) == b""


def test_iteration_yields_lines():
    reader = SSETransformingReader(io.BytesIO(b": a\n\ndata: x"))
    assert list(reader) == [b": a\n", b"\n", b"data: x\n"]


def test_line_too_long():
    reader = SSETransformingReader(io.BytesIO(b"x" * (1024 * 1024 + 10) + b"\n"))
    with pytest.raises(ValueError):
        reader.read()


@pytest.mark.parametrize(
    "value, expected",
    [(42.7, 42), (0.0, 0), (7, 7), ("not a number", 0), (None, 0), (True, 0)],
)
def test_to_int(value, expected):
    assert to_int(value) == expected


def test_base_transformer_is_identity():
    assert ResponseTransformer().transform_sse_chunk(b'{"x":1}') == b'{"x":1}'