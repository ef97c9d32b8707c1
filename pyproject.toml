[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kafkaio"
version = "0.1.0"
description = "Kafka wire-format encoding and a batching, partition-balancing message writer"
requires-python = ">=3.10"
keywords = ["kafka", "producer", "protocol", "record-batch", "zstd"]
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
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Topic :: System :: Networking",
]
dependencies = [
    "zstandard",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["kafkaio"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
