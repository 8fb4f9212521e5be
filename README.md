# nenya

Building blocks for a gateway that sits in front of OpenAI-compatible chat
completion providers. It has no dependencies outside the standard library.

- `nenya.routing`: pick the provider for a model name, work out the upstream
  URL, find the largest context window an agent's models offer, and copy
  request headers with the hop-by-hop ones left out.
- `nenya.filter`: `StreamFilter` watches streamed assistant text through a
  sliding window. Text matching a secret pattern is redacted, even when a
  match is split across chunks. Text matching a block pattern stops the
  stream.
- `nenya.reader`: `SSETransformingReader` reads a server-sent-events body line
  by line, passes each chunk through the filter and an optional
  `ResponseTransformer`, and reports token usage once through a callback.

## Install

```
pip install .
```

## Filtering a stream

```python
import io
import re

from nenya.filter import StreamBlockedError, StreamFilter
from nenya.reader import SSETransformingReader

stream_filter = StreamFilter(
    [re.compile(r"AKIA[0-9A-Z]{16}")],   # secret patterns (strings work too)
    [re.compile(r"(?i)rm -rf /")],        # block patterns
    "[REDACTED]",                         # redaction label
    4096,                                 # window size; 0 or less means 4096
)

body = io.BytesIO(
    b'data: {"choices":[{"delta":{"content":"hi"}}]}\n'
    b'data: {"choices":[],"usage":{"completion_tokens":1,"prompt_tokens":2,"total_tokens":3}}\n'
    b"data: [DONE]\n"
)

def on_usage(completion, prompt, total):
    print("usage", completion, prompt, total)

reader = SSETransformingReader(body, None, on_usage, stream_filter)
try:
    for line in reader:
        ...  # forward each line to the client
except StreamBlockedError:
    ...  # stop the response
```

### StreamFilter

`filter_content(text)` returns a tuple `(text, action, reason)`, where
`action` is a `FilterAction` (`PASS`, `REDACT` or `BLOCK`) and `reason` is the
source of the block pattern that matched. Once the filter has blocked, every
later call returns `BLOCK` with the same reason. `is_blocked()`,
`window_content()` and `window_len()` expose its state; the window keeps only
the last `window_size` characters.

### SSETransformingReader

The source may be a binary file or any iterable of byte lines. Each line is
handled as follows and always comes out ending in a newline:

- `data: ` lines holding a JSON object have `choices[0].delta.content` run
  through the stream filter; redacted content is written back into the chunk.
  `data: [DONE]` and empty lines pass through unchanged.
- If `on_usage` is set, the first chunk with a `usage` object whose token
  counts are not all zero calls it with `(completion, prompt, total)`.
- If a transformer is given, its `transform_sse_chunk(data)` result replaces
  the chunk. If it raises, the original line is kept. Bare JSON lines starting
  with `{` or `[` are passed to the transformer too.
- When the filter blocks, reading raises `StreamBlockedError`, then and on
  every later read. A line of 1 MiB or more raises `ValueError`.

`read(size)` returns up to `size` bytes (everything when `size` is negative).
Iterating the reader yields one line at a time.

`ResponseTransformer(func)` wraps a function from bytes to bytes; without a
function chunks pass through. Subclasses may override `transform_sse_chunk`.

### Chunk helpers

`parse_sse_chunk(data)` returns a dict for a JSON object and `None` for
anything else. `extract_delta_content(data)` and
`extract_delta_content_from_map(chunk)` return `choices[0].delta.content` or
`""`. `replace_delta_content(data, new)` and
`replace_delta_content_map(chunk, new)` set that field and return compact JSON
with sorted keys; `replace_delta_content` returns the data unchanged if it is
not a JSON object. `to_int(value)` turns a JSON number into an int, truncating
floats, and gives `0` for anything else, booleans included.

## Routing

```python
from nenya.routing import ModelEntry, Provider, determine_upstream, provider_url

providers = {
    "deepseek": Provider(
        name="deepseek",
        url="https://deepseek.example.com/chat/completions",
        route_prefixes=["deepseek-"],
    ),
}
registry = {"deepseek-chat": ModelEntry(provider="deepseek", max_output=8192)}

determine_upstream("deepseek-chat", providers, registry)
provider_url("deepseek", "", providers)
```

- `resolve_provider(model, providers, registry)` checks the registry first,
  then matches each provider's `route_prefixes` against the lower-cased model
  name. It returns `None` when nothing matches.
- `determine_upstream(...)` returns that provider's URL, falling back to the
  `zai` provider if one is configured, else `""`.
- `provider_url(provider, agent_url, providers)` returns `agent_url` if set,
  else the named provider's URL, else `""`.
- `resolve_window_max_context(name, agents, registry)` returns the largest
  `max_context` among an `AgentConfig`'s `AgentModel`s, using the registry for
  models that set none; `0` for an unknown agent.
- `copy_headers(src, dst)` appends every header of `src` to `dst` (a dict of
  lists) under its canonical name, skipping hop-by-hop headers such as
  `Connection`, `Content-Length` and `Transfer-Encoding`.
- `slice_contains(haystack, needle)` tells whether `needle` is in `haystack`.

`UpstreamTarget` is a plain record of URL, model, cooldown key, provider and
output limit.

## What this package does not do

It has no HTTP server and does not forward requests itself. It ships no
built-in provider list or model registry: callers supply both. It does not
rewrite request bodies, inject API keys or system prompts, cap `max_tokens`,
or choose between an agent's models by rotation or circuit breaking.

## Tests

```
pip install ".[test]"
pytest
```