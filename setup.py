# setup.py
from setuptools import setup, find_packages

setup(
    name="ring-processor",
    version="0.1.0",
    description="Distributed token-range processing over a consistent-hash ring",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.9",
    install_requires=[
        "setproctitle",
        "tqdm",
    ],
    extras_require={
        "test": ["pytest"],
    },
)
