"""Setup configuration for the Whiteflag Discord Bot."""

from setuptools import setup, find_packages

setup(
    name="whiteflag",
    version="0.0.1",
    description="A Discord bot for staff-reviewed white flag raid protection",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord",
        "python-dotenv",
        "PyYAML",
        "prompt_toolkit",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "whiteflag=whiteflag.main:main",
        ],
    },
)
