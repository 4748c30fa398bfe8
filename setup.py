"""
Setup script for the docsmith project.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="docsmith",
    version="0.1.0",
    packages=find_packages(include=["src", "src.*", "frontend", "pdf_service"]),
    package_data={"frontend": ["templates/*.html"]},
    py_modules=["version"],
    python_requires=">=3.11",
    install_requires=[
        "flask>=3.0",
        "requests>=2.31",
        "python-dotenv>=1.0",
        "pymongo>=4.6",
        "httpx>=0.27",
        "beautifulsoup4>=4.12",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "fastapi>=0.110",
        "playwright>=1.40",
        "langchain-core>=0.2",
        "langchain-openai>=0.1",
        "tenacity>=8.2",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "pytest-mock>=3.12",
        ],
    },
)
