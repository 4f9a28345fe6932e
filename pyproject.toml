[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lakerunner"
version = "0.1.0"
description = "Building blocks for a telemetry data lake: object naming, tag IDs, log fingerprints, segment compaction planning, column schema nodes, size estimates and cached storage-profile lookups."
requires-python = ">=3.10"
dependencies = [
    "cachetools",
]
keywords = [
    "telemetry",
    "logs",
    "metrics",
    "fingerprint",
    "compaction",
    "ulid",
    "data-lake",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["lakerunner"]

[tool.pytest.ini_options]
testpaths = ["tests"]
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
