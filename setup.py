from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="derivative-media",
    version="0.1.0",
    author="Derivative Media Team",
    author_email="developer@example.com",
    description="Thumbnails and transcodes for stored media files",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/derivative-media",
    packages=find_packages(),
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX",
    ],
    python_requires=">=3.9",
    install_requires=[
        "typer>=0.9.0",
        "rich>=13.4.0",
        "pydantic>=2.4.0",
        "structlog>=23.1.0",
        "pillow>=10.0.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "derivative-media=derivative_media.cli:app",
        ],
    },
)
