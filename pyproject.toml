[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dclpipe"
version = "0.1.0"
description = "Building blocks for multi-process data pipelines: ring buffer, worker process table, line-based TCP commands, frame file lists and an in-memory storage model"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "pipeline",
    "multiprocessing",
    "ring-buffer",
    "tcp",
    "messaging",
    "process-manager",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
dclpipe-filereader = "dclpipe.filereader:main"
dclpipe-server = "dclpipe.network:server_main"
dclpipe-client = "dclpipe.network:client_main"
dclpipe-proxy = "dclpipe.network:proxy_main"

[tool.hatch.build.targets.wheel]
packages = ["dclpipe"]

[tool.hatch.build.targets.sdist]
include = ["dclpipe", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
