[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "apersync"
version = "0.1.0"
description = "Synchronized state machines over WebSockets"
requires-python = ">=3.10"
keywords = ["websocket", "state-machine", "synchronization", "multiplayer", "fractional-index"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
    "Topic :: Internet :: WWW/HTTP",
]
dependencies = [
    "aiohttp",
    "msgpack",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
apersync-counter = "apersync.counter:main"
apersync-drop-four = "apersync.drop_four:main"

[tool.hatch.build.targets.wheel]
packages = ["apersync"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
