"""setuptools setup for Roma Timer.

Install for development:
    pip install -e ".[test]"
"""

from setuptools import setup, find_packages

setup(
    name="romatimer",
    version="0.1.0",
    description="Headless pomodoro timer server with daily session reset",
    packages=find_packages(include=["romatimer", "romatimer.*"]),
    python_requires=">=3.10",
    install_requires=[
        "PyQt6>=6.5",
        "SQLAlchemy>=2.0",
        "APScheduler>=3.10,<4",
        "tzdata",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "romatimer=romatimer.__main__:main",
        ],
    },
)
