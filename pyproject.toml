[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ytyanbot"
version = "0.1.0"
description = "Helpers for a group chat bot: calculator, Bilibili link cleaning, currency exchange, tabletop dice and battle tracking, web app auth, media downloads"
requires-python = ">=3.10"
keywords = ["chat", "bot", "calculator", "bilibili", "dice", "exchange-rate", "yt-dlp"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Communications :: Chat",
]
dependencies = [
    "requests",
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["ytyanbot"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
