"""
Setup file.
"""

from pathlib import Path

from setuptools import find_packages, setup

KEYWORDS = "subprocess long running process watchdog media player encoder"
HERE = Path(__file__).parent


if __name__ == "__main__":
    setup(
        name="cmdline-process",
        version="1.0.0",
        description="Thread-safe control of long-running command lines with an inactivity watchdog.",
        maintainer="Zachary Vorhies",
        keywords=KEYWORDS,
        python_requires=">=3.10",
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        install_requires=["psutil"],
        extras_require={"test": ["pytest"]},
        include_package_data=True)
