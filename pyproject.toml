[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "compactrec"
version = "0.1.0"
description = "Compact binary record encoding and a tiny compiler and runner for SBas programs"
requires-python = ">=3.10"
dependencies = []
keywords = ["binary", "serialization", "records", "compiler", "sbas", "x86-64"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Compilers",
    "Topic :: File Formats",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
compactrec-records = "compactrec.records:main"
compactrec-sbas = "compactrec.sbas:main"

[tool.hatch.build.targets.wheel]
packages = ["compactrec"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
