#!/usr/bin/env python3
"""Setup script for droot."""

from setuptools import setup, find_packages

setup(
    name="droot",
    version="0.1.0",
    description="Pull an extracted filesystem image from S3 and deploy it with rsync or an atomic symlink swap",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11.4",
    install_requires=[
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "boto3>=1.34.0",
        "prometheus-client>=0.19.0",
        "structlog>=24.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "droot=droot.main:run",
        ],
    },
)
