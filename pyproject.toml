[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "newnames"
version = "0.1.0"
description = "Copy a MySQL or PostgreSQL database to another one, anonymizing chosen columns on the way"
requires-python = ">=3.10"
keywords = [
    "anonymization",
    "database",
    "mysql",
    "postgresql",
    "data-masking",
    "test-data",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: Security",
    "Topic :: Utilities",
]
dependencies = [
    "pyyaml>=6.0",
    "sqlalchemy>=2.0",
    "click>=8.1",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
]

[project.scripts]
new_names = "newnames.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["newnames"]

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
ignore_missing_imports = true
