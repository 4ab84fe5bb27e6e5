[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "aethrolink"
version = "0.1.0"
description = "Agent task routing over ACP runtimes: dialects, sticky sessions, a node command-line client and fake test agents"
requires-python = ">=3.10"
dependencies = []
keywords = ["agents", "acp", "json-rpc", "orchestration", "sessions", "cli"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
alink-cli = "aethrolink.cli:main"
fake-acp-client-agent = "aethrolink.fake_client_agent:main"
fake-acp-comm-agent = "aethrolink.fake_comm_agent:main"

[tool.hatch.build.targets.wheel]
packages = ["aethrolink"]

[tool.hatch.build.targets.sdist]
include = ["aethrolink", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
