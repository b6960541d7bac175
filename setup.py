#!/usr/bin/env python3
"""
Setup script for mumble-control
"""

from setuptools import setup, find_packages

setup(
    name="mumble-control",
    version="0.1.0",
    description="Asyncio control channel client for Mumble-style voice/chat servers",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "websockets>=15.0",
        "cryptography>=43.0.1",
        "click>=8.1.7",
        "typer>=0.12.3",
        "rich>=13.9.2",
        "PyYAML>=6.0.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.4.2",
            "pytest-asyncio>=1.2.0",
        ],
    },
    python_requires=">=3.9",
    entry_points={
        'console_scripts': [
            'mumble-client=mumble_client.cli:main',
        ],
    },
)
