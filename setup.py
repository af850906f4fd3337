"""
Setup configuration for adlens package.
"""

from setuptools import setup, find_packages

setup(
    name="adlens",
    version="1.0.0",
    description="Meta ad creative resolution and caching pipeline",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "supabase>=2.0",
        "postgrest>=0.13",
        "httpx>=0.25",
        "pydantic>=2.0",
        "python-dotenv>=1.0",
        "tenacity>=8.0",
        "logfire>=0.40",
        "fastapi>=0.100",
        "uvicorn>=0.23",
        "slowapi>=0.1.9",
        "click>=8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "adlens=adlens.cli.main:cli",
        ],
    },
)
