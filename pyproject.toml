[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vsmt"
version = "0.1.0"
description = "Virtual machine system monitoring over vsock: guest metric agent, wire format and hypervisor-side dispatchers"
requires-python = ">=3.10"
dependencies = []
keywords = ["monitoring", "vsock", "virtual machine", "hypervisor", "metrics", "cpu", "memory"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
vsmt-client = "vsmt.client:main"

[tool.hatch.build.targets.wheel]
packages = ["vsmt"]

[tool.pytest.ini_options]
addopts = "-ra"
