from setuptools import setup, find_packages

setup(
    name="chaincache",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pydantic>=2",
        "pydantic-settings>=2.7",
        "structlog",
        "redis>=5.3",
        "prometheus-client",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    python_requires=">=3.9",
)
