[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "oamtraits"
version = "0.1.0"
description = "Reconcilers for OAM autoscaling traits: KEDA autoscaler, cron HPA, HPA and metric-driven HPA"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "oam",
    "kubernetes",
    "autoscaling",
    "hpa",
    "keda",
    "reconciler",
    "traits",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Clustering",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["oamtraits"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
