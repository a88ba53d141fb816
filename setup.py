"""
Setup script for the ELF/A2L debug-info obfuscator.
"""

from setuptools import setup, find_packages

setup(
    name="a2l-elf-obfuscator",
    version="0.1.0",
    description="Consistent obfuscation of ELF debug info and the matching A2L calibration description",
    author="Your Name",
    author_email="your.email@example.com",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy>=1.20.0",
        "tqdm>=4.62.0",
        "pyelftools>=0.29",
        "lief>=0.14",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "a2l-elf-obfuscate=elf_a2l_obfuscator.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Topic :: Security",
        "Topic :: Software Development :: Embedded Systems",
    ],
    python_requires=">=3.8",
)
