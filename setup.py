"""
Setup script for tubecycler.

tubecycler is the scheduling core of a three-lane spaced-repetition
practice engine. It serves three roles:

1. Scheduler - Position store, advance-and-shift reordering, lane rotation
2. Content Buffer - Phased prefetch of upcoming content bodies
3. Sync Adapter - Offline-first local cache with last-write-wins remote sync

The 'tubecycler' command inspects and replays scheduler snapshots.
"""

from setuptools import find_packages, setup

setup(
    name="tubecycler",
    version="1.0.0",
    description="Three-lane spaced-repetition scheduling core",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "tubecycler=tubecycler.cli:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition scheduler education",
)
