from setuptools import setup, find_packages

setup(
    name="sideport",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    install_requires=[
        "httpx",
        "pydantic>=2",
        "python-dotenv",
        "restrictedpython",
        "click",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "sideport=main:main",
        ],
    },
)
