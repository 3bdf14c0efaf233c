[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ocppcharge"
version = "0.1.0"
description = "Charge point side of the OCPP 1.6 JSON protocol: message handlers, configuration, diagnostics and an operation factory"
requires-python = ">=3.10"
dependencies = []
keywords = ["ocpp", "ocpp16", "ev-charging", "charge-point", "emobility"]
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
    "Topic :: Communications",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ocppcharge"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
