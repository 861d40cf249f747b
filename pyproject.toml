[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "clubbooking"
version = "0.1.0"
description = "HTTP service for computer clubs: club listings, computers and seat bookings over an in-memory document store"
requires-python = ">=3.10"
keywords = ["booking", "computer club", "http", "rest", "flask", "jwt"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "flask",
    "pyjwt",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
clubbooking = "clubbooking.app:main"

[tool.hatch.build.targets.wheel]
packages = ["clubbooking"]

[tool.pytest.ini_options]
addopts = "-ra"
