[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "promrecorder"
version = "0.1.0"
description = "In-process metrics recorder that renders counters, gauges and histograms in the Prometheus text exposition format."
requires-python = ">=3.10"
dependencies = []
keywords = ["prometheus", "metrics", "monitoring", "histogram", "summary", "benchmark"]
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
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
promrecorder-benchmark = "promrecorder.benchmark:main"

[tool.hatch.build.targets.wheel]
packages = ["promrecorder"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
