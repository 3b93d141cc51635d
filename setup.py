"""Setup configuration for Replacecord Discord Bot."""

from setuptools import setup, find_packages

setup(
    name="replacecord",
    version="0.1.0",
    description="A Discord bot that routes imageboard replacement requests through moderator review",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.6",
        "python-dotenv>=1.0",
        "PyYAML>=6.0",
        "aiosqlite>=0.20",
        "requests>=2.31",
        "prompt_toolkit>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "replacecord=replacecord.main:main",
        ],
    },
)
