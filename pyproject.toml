[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "edgecache"
version = "0.1.0"
description = "Edge agent that mirrors authorization warrants into a local cache and answers access checks from it"
requires-python = ">=3.10"
keywords = [
    "authorization",
    "authz",
    "warrants",
    "access-control",
    "edge",
    "cache",
    "redis",
    "wsgi",
    "server-sent-events",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: Database",
]
dependencies = [
    "requests>=2.28",
    "redis>=4.5",
    "werkzeug>=2.3",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[tool.hatch.build.targets.wheel]
packages = ["edgecache"]

[tool.hatch.build.targets.sdist]
include = [
    "edgecache",
    "tests",
    "pyproject.toml",
]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
target-version = "py310"
line-length = 100

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
ignore_missing_imports = true
