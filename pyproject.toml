[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chatbridge"
version = "1.25.3.dev0"
description = "Relay messages between chat networks through configurable gateways"
requires-python = ">=3.11"
keywords = ["chat", "bridge", "gateway", "relay", "webhook", "xmpp"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Chat",
]
dependencies = [
    "cachetools",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
chatbridge = "chatbridge.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["chatbridge"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"
