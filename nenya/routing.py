"""Provider resolution, upstream selection and header forwarding for the proxy."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, MutableMapping, Optional, Sequence, Union

DEFAULT_PROVIDER = "zai"

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "content-length",
        "content-encoding",
        "upgrade",
        "transfer-encoding",
        "te",
        "trailers",
        "proxy-authenticate",
        "proxy-authorization",
        "keep-alive",
        "proxy-connection",
    }
)

_TOKEN_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")

HeaderValues = Union[str, Iterable[str]]


@dataclass
class Provider:
    """An upstream provider endpoint."""

    name: str
    url: str = ""
    route_prefixes: Sequence[str] = field(default_factory=tuple)
    auth_style: str = ""
    api_key: str = ""


@dataclass(frozen=True)
class ModelEntry:
    """Known facts about a model: its provider and its token limits."""

    provider: str
    max_context: int = 0
    max_output: int = 0


@dataclass
class AgentModel:
    """One model an agent may route to."""

    provider: str
    model: str
    url: str = ""
    max_context: int = 0
    max_output: int = 0


@dataclass
class AgentConfig:
    """A named agent: an ordered set of models and how to pick among them."""

    models: list[AgentModel] = field(default_factory=list)
    strategy: str = ""
    system_prompt: str = ""
    system_prompt_file: str = ""


@dataclass(frozen=True)
class UpstreamTarget:
    """A concrete upstream to send one request to."""

    url: str = ""
    model: str = ""
    cool_key: str = ""
    provider: str = ""
    max_output: int = 0


def resolve_provider(
    model_name: str,
    providers: Optional[Mapping[str, Provider]],
    registry: Optional[Mapping[str, ModelEntry]] = None,
) -> Optional[Provider]:
    """Find the provider for a model: registry first, then route prefixes."""
    providers = providers or {}
    entry = (registry or {}).get(model_name)
    if entry is not None and entry.provider in providers:
        return providers[entry.provider]
    lower = model_name.lower()
    for provider in providers.values():
        if any(lower.startswith(prefix) for prefix in provider.route_prefixes):
            return provider
    return None


def determine_upstream(
    model_name: str,
    providers: Optional[Mapping[str, Provider]],
    registry: Optional[Mapping[str, ModelEntry]] = None,
) -> str:
    """Return the upstream URL for a model, falling back to the default provider."""
    provider = resolve_provider(model_name, providers, registry)
    if provider is not None:
        return provider.url
    default = (providers or {}).get(DEFAULT_PROVIDER)
    return default.url if default is not None else ""


def provider_url(
    provider: str, agent_url: str, providers: Optional[Mapping[str, Provider]]
) -> str:
    """Return the agent's URL override, else the named provider's URL, else ''."""
    if agent_url:
        return agent_url
    known = (providers or {}).get(provider)
    return known.url if known is not None else ""


def resolve_window_max_context(
    model_name: str,
    agents: Mapping[str, AgentConfig],
    registry: Optional[Mapping[str, ModelEntry]] = None,
) -> int:
    """Largest context window among an agent's models, or 0 for unknown agents."""
    agent = agents.get(model_name)
    if agent is None:
        return 0
    registry = registry or {}

    def context_of(model: AgentModel) -> int:
        if model.max_context:
            return model.max_context
        entry = registry.get(model.model)
        return entry.max_context if entry is not None and entry.max_context > 0 else 0

    return max((context_of(m) for m in agent.models), default=0, key=int) if agent.models else 0


def canonical_header_key(key: str) -> str:
    """Canonical MIME form of a header name, e.g. 'content-type' -> 'Content-Type'."""
    if not _TOKEN_RE.match(key):
        return key
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


def copy_headers(
    src: Mapping[str, HeaderValues], dst: MutableMapping[str, list[str]]
) -> None:
    """Append every end-to-end header of src to dst, skipping hop-by-hop ones."""
    for key, values in src.items():
        if key.lower() in HOP_BY_HOP_HEADERS:
            continue
        if isinstance(values, str):
            values = [values]
        dst.setdefault(canonical_header_key(key), []).extend(values)


def slice_contains(haystack: Iterable[int], needle: int) -> bool:
    """Whether needle occurs in haystack."""
    return needle in haystack