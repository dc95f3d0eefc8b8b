# setup.py
from setuptools import setup, find_packages

setup(
    name="jorup",
    version="0.1.0",
    description="Toolchain manager for jormungandr nodes: install, run and stop per blockchain",
    author="Swift Fox",
    packages=find_packages(
        exclude=(
            "tests",
            "tests.*",
            "docs",
            "dist",
            "build",
        )
    ),
    python_requires=">=3.10",
    install_requires=[
        "requests",
        "packaging",
        "PyYAML",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "jorup=jorup.cli.main:main",
        ],
    },
)
