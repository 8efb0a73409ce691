[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lrmap"
version = "0.1.0"
description = "Building blocks of a long-read mapper: k-mer index, candidate search and corridor alignment matrix"
requires-python = ">=3.10"
dependencies = []
keywords = ["bioinformatics", "long reads", "k-mer", "read mapping", "candidate search"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Bio-Informatics",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
lrmap = "lrmap.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["lrmap"]

[tool.pytest.ini_options]
addopts = "-ra"
