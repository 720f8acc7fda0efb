[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vuldbgen"
version = "0.9.0"
description = "Build encrypted vulnerability databases from distribution and application security feeds"
requires-python = ">=3.10"
keywords = [
    "vulnerability",
    "cve",
    "security",
    "advisory",
    "database",
    "alas",
    "rubysec",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
    "Typing :: Typed",
]
dependencies = [
    "cryptography",
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["vuldbgen"]

[tool.hatch.build.targets.sdist]
include = [
    "vuldbgen",
    "tests",
]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
