[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lvmlocal"
version = "0.1.0"
description = "Helpers for node-local LVM volumes: lvm command building, IO rate limits, scheduling weights and capacity accounting"
requires-python = ">=3.10"
dependencies = []
keywords = ["lvm", "storage", "csi", "volumes", "local-pv", "thin-provisioning", "snapshots"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["lvmlocal"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
strict = true
