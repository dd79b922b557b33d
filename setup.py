from setuptools import setup, find_packages

setup(
    name="breachbloom",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*", "benchmarks"]),
    python_requires=">=3.11",
    install_requires=[
        "msgpack>=1.0.5",
        "tqdm>=4.65.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "numpy>=1.23.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
            "isort>=5.0.0",
        ],
        "compression": [
            "python-snappy>=0.6.1",
            "zstandard>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "breachbloom=breachbloom.cli:main",
        ],
    },
    author="thekeenest",
    author_email="your.email@example.com",
    description="Sharded bloom filters for checking credentials against breach corpora",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    url="https://github.com/thekeenest/breachbloom",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.11",
        "Topic :: Security",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
)
