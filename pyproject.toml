[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nenya"
version = "0.1.0"
description = "Provider routing, header forwarding and streaming content filtering for an LLM gateway proxy"
requires-python = ">=3.10"
dependencies = []
keywords = ["llm", "proxy", "gateway", "sse", "streaming", "routing", "redaction"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["nenya"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
