# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Setup configuration for the Versioned Library Registry
"""

from setuptools import setup, find_packages

setup(
    name="libregistry",
    version="1.0.0",
    description="Versioned library repository with dependency resolution and locked installs",
    author="Jason Cafarelli",
    packages=find_packages("src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.0",
        "aiofiles>=23.1.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ]
    },
)
