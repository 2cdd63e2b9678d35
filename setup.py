"""
Setup script for recall-engine.

Recall is the spaced-repetition core of the study platform. It provides:

1. Card Scheduling - FSRS review state transitions and due dates
2. Practice Sessions - priority-weighted, interleaved card selection
3. Concept Mastery - concurrent mastery updates with optimistic locking

There is no command-line entry point; host services import the library.
"""

from setuptools import find_packages, setup

setup(
    name="recall-engine",
    version="0.1.0",
    description="Spaced-repetition scheduling and interleaved practice core",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Right Learning",
    packages=find_packages(include=["recall", "recall.*"]),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        # Database
        "sqlalchemy[asyncio]>=2.0.0",
        "asyncpg>=0.29.0",
        "psycopg2-binary>=2.9.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0",
            "pytest-cov>=4.0.0",
            "aiosqlite>=0.19.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition fsrs interleaving education",
)
