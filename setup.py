"""
Setup script for the Procurement Negotiation Simulator package.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text() if readme_file.exists() else ""

# Read requirements
requirements_file = Path(__file__).parent / "requirements.txt"
if requirements_file.exists():
    with open(requirements_file) as f:
        requirements = [line.strip() for line in f
                       if line.strip() and not line.startswith("#")]
else:
    requirements = [
        "pydantic>=2.0.0",
        "numpy>=1.24.0",
        "pandas>=2.0.0",
        "matplotlib>=3.7.0",
        "seaborn>=0.12.0",
        "typer>=0.9.0",
        "pyyaml>=6.0",
        "rich>=13.0.0",
        "sqlalchemy>=2.0.0",
        "python-dotenv>=1.0.0",
        "python-json-logger>=2.0.0",
    ]

setup(
    name="procurement-sim",
    version="1.0.0",
    description="Multi-supplier procurement negotiation simulator with weighted supplier selection",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "docs", "examples"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.3.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "procurement-sim=procurement_sim.cli:app",
        ],
    },
    include_package_data=True,
    package_data={
        "": ["*.yaml"],
    },
    zip_safe=False,
)
