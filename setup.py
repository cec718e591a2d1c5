"""Setup script for package installation."""

from setuptools import find_packages, setup

setup(
    name="diffmethyl",
    version="0.1.0",
    description=(
        "Differential methylation analysis of Illumina methylation arrays"
    ),
    packages=find_packages(include=["diffmethyl", "diffmethyl.*"]),
    package_data={"diffmethyl": ["data/config.toml"]},
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "pandas",
        "psutil",
        "scikit-learn",
        "scipy",
        "statsmodels",
        "toml",
        "tqdm",
    ],
    extras_require={
        "excel": ["odfpy", "openpyxl"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["diffmethyl=diffmethyl.cli:main"],
    },
)
