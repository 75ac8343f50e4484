"""
notetree setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="notetree",
    version="0.3.0",
    description="notetree — optimistic client engine for a remote markdown document tree",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "notetree=notetree.cli:main",
        ],
    },
    install_requires=[
        "pydantic>=2.5",
        "pyyaml>=6.0",
        "httpx>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
)
