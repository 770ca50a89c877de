"""Setup file for development installation."""

from setuptools import setup, find_namespace_packages

setup(
    name="alkebulan-api",
    version="0.1.0",
    packages=find_namespace_packages(where="src", include=["alkebulan*"]),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "pydantic>=2.6",
        "pydantic-settings>=2.1",
        "structlog>=23.1",
        "prometheus-client>=0.17",
        "opentelemetry-instrumentation-fastapi>=0.41b0",
        "stripe>=8.0",
        "supabase>=2.3",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.21",
            "httpx>=0.24",
        ],
    },
)
