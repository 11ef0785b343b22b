[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tinykv"
version = "0.1.0"
description = "A small in-memory key-value server with strings, sorted sets and key expiry"
requires-python = ">=3.10"
dependencies = []
keywords = ["key-value", "server", "sorted-set", "avl-tree", "hashtable", "in-memory"]
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
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tinykv-server = "tinykv.server:main"

[tool.hatch.build.targets.wheel]
packages = ["tinykv"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
