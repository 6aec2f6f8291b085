[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fcgiworks"
version = "3.1.0"
description = "Building blocks for FastCGI applications: record encoding, socket handling, binary SQL array parameters and background SMTP mailing"
requires-python = ">=3.10"
keywords = ["fastcgi", "fcgi", "cgi", "sockets", "smtp", "big-endian"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content :: CGI Tools/Libraries",
    "Topic :: Communications :: Email",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["fcgiworks"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
