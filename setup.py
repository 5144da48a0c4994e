from setuptools import setup, find_packages

setup(
    name="mkdocs-unrealdoc",
    version="1.0.0",
    description="MkDocs plugin and CLI for Unreal C++ API documentation and books",
    keywords="mkdocs unreal cpp documentation books python",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "mkdocs>=1.4",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    classifiers = [
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Documentation",
        "Topic :: Software Development :: Documentation",
        "Framework :: MkDocs",
    ],
    entry_points={
        "mkdocs.plugins": [
            "unrealdoc = mkdocs_unrealdoc.plugin:UnrealDocPlugin",
        ],
        "console_scripts": [
            "unrealdoc = mkdocs_unrealdoc.cli:main",
        ],
    },
)
