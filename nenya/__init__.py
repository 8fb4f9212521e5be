"""Provider routing, header forwarding and SSE stream filtering for an LLM gateway."""

__version__ = "0.1.0"