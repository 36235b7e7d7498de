[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "layergcrawl"
version = "0.1.0"
description = "Building blocks for a multichain event crawler: GraphQL schema parsing, SQL migration and query generation, ABI inspection, SQL storage and Redis caching."
requires-python = ">=3.10"
keywords = ["graphql", "migrations", "code-generation", "abi", "crawler", "blockchain", "sql", "redis"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Code Generators",
    "Topic :: Database",
    "Typing :: Typed",
]
dependencies = [
    "pyyaml",
    "sqlalchemy>=2.0",
    "redis",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["layergcrawl"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
