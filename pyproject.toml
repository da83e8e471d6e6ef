[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "apptagcap"
version = "1.0.0"
description = "Helpers for tagging captured network flows with the application that owns the local socket"
requires-python = ">=3.10"
dependencies = []
keywords = ["netflow", "packet", "ethernet", "procfs", "socket", "application", "monitoring"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["apptagcap"]

[tool.hatch.build.targets.sdist]
include = ["apptagcap", "tests", "README.md"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
