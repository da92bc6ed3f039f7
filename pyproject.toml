[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ldbstore"
version = "0.1.0"
description = "Storage layer, options and manifest records for a LevelDB-style key/value store"
requires-python = ">=3.10"
dependencies = []
keywords = ["leveldb", "storage", "manifest", "key-value", "database"]
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
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ldbstore"]

[tool.pytest.ini_options]
addopts = "-ra"
