[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "grpcmw"
version = "2.1.0"
description = "gRPC middleware building blocks: contexts, metadata helpers, request validation, Prometheus-style metrics and backoff utilities"
requires-python = ">=3.10"
dependencies = []
keywords = ["grpc", "middleware", "interceptor", "metadata", "validation", "prometheus", "metrics", "backoff"]
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
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["grpcmw"]

[tool.hatch.build.targets.sdist]
include = ["grpcmw", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
