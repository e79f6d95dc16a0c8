[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tokenchain"
version = "0.1.0"
description = "A small proof-of-work token ledger with account balances, Merkle roots and a TCP message layer"
requires-python = ">=3.10"
dependencies = []
keywords = ["blockchain", "ledger", "proof-of-work", "merkle", "token", "p2p"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console :: Curses",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
tokenchain = "tokenchain.app:main"

[tool.hatch.build.targets.wheel]
packages = ["tokenchain"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
