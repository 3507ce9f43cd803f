from setuptools import find_packages, setup

setup(
    name="regionsnap",
    version="0.1.0",
    packages=find_packages(exclude=("tests", "tests.*")),
    entry_points={
        "console_scripts": [
            "regionsnap=regionsnap.cli:main",
        ],
    },
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.10",
    description="regionsnap — undoable chunk deletion for region-file worlds",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Games/Entertainment",
        "Programming Language :: Python :: 3.12",
    ],
)
