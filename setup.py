"""
Lemdata Router - cost-aware provider selection and dispatch
Setup configuration for pip installation
"""

from setuptools import setup, find_namespace_packages
from pathlib import Path

# Read README for long description
readme_path = Path(__file__).parent / "README.md"
long_description = readme_path.read_text() if readme_path.exists() else ""

setup(
    name="lemdata-router",
    version="1.0.0",
    author="bionicbutterfly13",
    description="Cost-aware routing of chat requests across generation providers",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_namespace_packages(include=["src", "src.*"]),
    package_data={"src.config": ["*.yaml"]},
    include_package_data=True,
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.104.1",
        "uvicorn[standard]>=0.24.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "redis>=5.0.1",
        "httpx>=0.25.1",
        "pyyaml>=6.0.1",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.3",
            "pytest-asyncio>=0.21.1",
        ]
    },
    entry_points={
        "console_scripts": [
            "lemdata-router=src.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3.11",
        "License :: OSI Approved :: MIT License",
    ],
)
