from setuptools import setup, find_packages

setup(
    name="event_core",
    version="0.1.0",
    description="Core EXIF extraction and event clustering utilities for Photo Events",
    packages=find_packages(),
    install_requires=[
        "Pillow>=9.0",
        "piexif>=1.1",
    ],
    python_requires=">=3.10",
)
