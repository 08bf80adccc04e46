from setuptools import find_packages, setup

setup(
    name="filepicker",
    version="0.1.0",
    description="Directory browser core with stale-while-revalidate caching and fuzzy search orchestration",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "cachetools>=5.0.0",
        "paramiko>=3.0.0",
    ],
    entry_points={
        "console_scripts": [
            "filepicker=filepicker.__main__:main",
        ],
    },
    python_requires=">=3.10",
    extras_require={
        "dev": [
            "pytest",
            "pytest-asyncio>=0.21",
            "build",
            "twine",
        ],
    },
)
