[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sockio"
version = "0.1.0"
description = "Socket.IO (Engine.IO v4) websocket client with a packet codec, namespaced sockets and a GeoIP lookup helper"
requires-python = ">=3.10"
keywords = ["socket.io", "engine.io", "websocket", "client", "realtime", "geoip"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "websocket-client>=1.6",
    "requests>=2.28",
]

[project.optional-dependencies]
test = [
    "pytest>=7",
]

[project.scripts]
sockio-geo = "sockio.geo:main"

[tool.hatch.build.targets.wheel]
packages = ["sockio"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
