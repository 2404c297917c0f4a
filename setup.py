"""Setup script for logmux"""

from setuptools import setup, find_namespace_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="logmux",
    version="0.1.0",
    author="logmux",
    author_email="admin@localhost.local",
    description="Multiplexed real-time container log streaming over Server-Sent Events",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "backend"},
    packages=find_namespace_packages(where="backend", include=["logmux", "logmux.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: System :: Logging",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn[standard]>=0.27",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "aiodocker>=0.21",
        "sse-starlette>=2.0",
        "click>=8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.21",
            "httpx>=0.27",
        ],
    },
    entry_points={
        "console_scripts": [
            "logmux=logmux.cli:cli",
        ],
    },
)
