# setup.py
from setuptools import setup, find_packages

setup(
    name="site_indexer",
    version="0.1.0",
    description="Шардированный обход сайтов и инкрементальное слияние индекса SiteIndexer",
    packages=find_packages(exclude=("tests", "tests.*")),
    install_requires=[
        "aiohttp>=3.9",
        "beautifulsoup4>=4.12",
        "lxml>=5.0",
        "pydantic>=2.5",
        "PyYAML>=6.0",
        "click>=8.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": ["site_indexer=site_indexer.cli:cli"],
    },
    python_requires=">=3.11",
)
