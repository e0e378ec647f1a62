# SPDX-FileCopyrightText: 2025 shadowshare contributors
# SPDX-License-Identifier: MIT

from setuptools import find_packages, setup

setup(
    name="shadowshare",
    version="0.1.0",
    description="K-of-N Shamir secret sharing over GF(256) with peer-to-peer share distribution",
    author="shadowshare contributors",
    license="MIT",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.9",
    install_requires=[
        "click<9.0,>=8.1",
        "cryptography>=38.0.4",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "pytest-cov>=5.0.0",
            "pytest-timeout>=2.3.0",
            "hypothesis>=6.0.0",
        ],
        "dev": [
            # linters and formatters
            "ruff>=0.2.0",
            "black>=23.1.0",
            "isort>=5.10.1",
            "mypy>=1.8.0",
            "bandit>=1.7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "shadowshare=shadowshare.cli:main",
        ],
    },
)
