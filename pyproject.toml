[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chamxfer"
version = "1.8.0"
description = "Transfer programs, files and disk images between a host and a C64 through a Chameleon cartridge"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "c64",
    "commodore",
    "chameleon",
    "d64",
    "d71",
    "d81",
    "p00",
    "gcr",
    "1541",
    "retrocomputing",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
    "Topic :: System :: Archiving",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
chxfer = "chamxfer.xfer_cli:main"
chusb = "chamxfer.chusb:main"

[tool.hatch.build.targets.wheel]
packages = ["chamxfer"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
