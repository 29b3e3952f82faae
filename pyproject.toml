[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hubbootstrap"
version = "0.1.0"
description = "Detects changed bootstrap kubeconfigs and expired hub client certificates, and reloads cluster agents"
requires-python = ">=3.10"
keywords = ["kubernetes", "kubeconfig", "bootstrap", "certificates", "cluster-management"]
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
    "Topic :: System :: Clustering",
]
dependencies = [
    "pyyaml>=6.0",
    "cryptography>=41.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "cryptography>=41.0",
    "pyyaml>=6.0",
]

[tool.hatch.build.targets.wheel]
packages = ["hubbootstrap"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
