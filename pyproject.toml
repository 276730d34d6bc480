[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "spgateway"
version = "0.1.0"
description = "Modbus RTU slave that relays requests to SPNet (DLE-framed) devices over serial lines"
requires-python = ">=3.10"
keywords = ["modbus", "rtu", "spnet", "serial", "rs485", "gateway", "byte-stuffing", "crc"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Manufacturing",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Interface Engine/Protocol Translator",
    "Topic :: Terminals :: Serial",
]
dependencies = [
    "pyserial",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
spgateway = "spgateway.gateway:main"

[tool.hatch.build.targets.wheel]
packages = ["spgateway"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
