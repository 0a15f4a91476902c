[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "canopus"
version = "0.1.0"
description = "Building blocks for a service supervisor: restart policies with backoff, TCP probes, an event bus, and a small JSON control daemon"
requires-python = ">=3.10"
dependencies = []
keywords = ["daemon", "supervisor", "service", "restart", "backoff", "health-check", "asyncio"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Framework :: AsyncIO",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Boot :: Init",
    "Topic :: System :: Monitoring",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
canopus-toy = "canopus.toy:main"

[tool.hatch.build.targets.wheel]
packages = ["canopus"]

[tool.hatch.build.targets.sdist]
include = ["canopus", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
disallow_untyped_defs = true
