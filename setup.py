"""
Setup script for poly-profile.
"""

from setuptools import setup, find_packages

setup(
    name="poly-profile",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*", "examples"]),
    package_data={"poly_profile": ["py.typed"]},
    python_requires=">=3.8",
)
