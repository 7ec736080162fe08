[build-system]
requires = ["setuptools>=61.0"]
build-backend = "setuptools.build_meta"

[project]
name = "procmach"
version = "0.1.0"
description = "A small process virtual machine with mailboxes, links, monitors and a cooperative scheduler"
requires-python = ">=3.10"
keywords = ["virtual machine", "actors", "processes", "scheduler", "message passing"]
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
    "Topic :: Software Development :: Interpreters",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
procmach = "procmach.programs:main"

[tool.setuptools.packages.find]
include = ["procmach*"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
