"""
EV Trip Planner
Charging-stop planning for long electric vehicle road trips
"""

from setuptools import setup, find_namespace_packages
import os

# Read the contents of README file
this_directory = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name="ev-trip-planner",
    version="0.1.0",
    description="Charging-stop planning, stop editing and multi-stop ordering for EV road trips",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_namespace_packages(include=["evtrip", "evtrip.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pandas>=1.5.0",
        "numpy>=1.21.0",
        "geopy>=2.3.0",
        "requests>=2.28.0",
        "python-dotenv>=1.0.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
