# setup.py

from setuptools import setup, find_namespace_packages

setup(
    name="defi-amm",
    version="1.0.0",
    description="Constant-product AMM core with a Mesa simulation harness",
    author="Auralshin",
    license="MIT",
    packages=find_namespace_packages(where="src", include=["defi_amm*"]),
    package_dir={"": "src"},
    install_requires=[
        "mesa>=3.0.0",
        "pandas>=1.0.0",
        "numpy>=1.18.0",
        "matplotlib>=3.0.0",
        "PyYAML>=5.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0.0"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
)
