from setuptools import setup, find_packages
from pathlib import Path

this_dir = Path(__file__).parent
readme = (this_dir / "README.md").read_text(encoding="utf-8") if (this_dir / "README.md").exists() else ""

setup(
    name="wgi",
    version="0.1.0",
    description="Run one handler unchanged under CGI and lambda-style invocation",
    long_description=readme,
    long_description_content_type="text/markdown",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    package_data={
        "wgi": [
            "templates/python/main.py",
        ]
    },
    entry_points={
        "console_scripts": [
            "wgi=wgi.cli:main",
        ]
    },
    extras_require={
        "test": ["pytest>=7"],
    },
    python_requires=">=3.8",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Environment :: Console",
        "Topic :: Internet :: WWW/HTTP :: Dynamic Content :: CGI Tools/Libraries",
    ],
)
