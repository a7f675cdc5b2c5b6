#!/usr/bin/env python3
"""
memclient Setup Script
======================
Allows installation of the memclient package.

Usage:
    pip install -e .           # Development install
    pip install -e .[test]     # Development install with test tools
    pip install .              # Regular install
"""

from setuptools import setup, find_packages

setup(
    name="memclient",
    version="1.0.0",
    description="Client library for memcached-compatible cache servers (textual and binary protocols)",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "memclient=memclient.client:main",
        ],
    },
)
