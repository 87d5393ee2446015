"""Packaging for pycovmap.

Optional dependencies are grouped in extras:

- ``fetch``: fetch CoverageJSON documents and parts given by URL
- ``proj``: host maps in arbitrary projections
- ``vis``: named colors and matplotlib colormaps as palettes
- ``dev``: test tooling
"""

import setuptools

setuptools.setup(
    name="pycovmap",
    version="0.1.0",
    description="Decode, subset and render CoverageJSON coverages as map layers",
    license="Apache-2.0",
    python_requires=">=3.10",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy>=1.22",
        "pandas>=2.0",
        "param>=2.0",
        "typing-extensions>=4.5; python_version < '3.12'",
        "xarray>=2022.3",
    ],
    extras_require={
        "fetch": ["aiohttp>=3.9"],
        "proj": ["pyproj>=3.5"],
        "vis": ["matplotlib>=3.5"],
        "dev": ["pytest>=8.0"],
        "test": ["pytest>=8.0"],
    },
    classifiers=[
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: GIS",
    ],
)
