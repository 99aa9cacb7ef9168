[build-system]
requires = ["setuptools>=68", "wheel"]
build-backend = "setuptools.build_meta"

[project]
name = "tftpkit"
version = "0.1.0"
description = "TFTP client with option negotiation, windowed uploads and simulated packet loss"
requires-python = ">=3.10"
dependencies = []
keywords = ["tftp", "file transfer", "udp", "rfc1350", "client"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: File Transfer Protocol (FTP)",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tftpkit = "tftpkit.app:main"

[tool.setuptools.packages.find]
include = ["tftpkit*"]

[tool.pytest.ini_options]
addopts = "-ra"
