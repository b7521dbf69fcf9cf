[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rainkit"
version = "0.1.0"
description = "BitTorrent client building blocks: HTTP and UDP tracker announces, unchoking, webseed downloads and a session RPC client"
requires-python = ">=3.10"
keywords = ["bittorrent", "torrent", "tracker", "webseed", "unchoke", "json-rpc"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Communications :: File Sharing",
    "Topic :: Internet",
]
dependencies = [
    "aiohttp",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["rainkit"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
