from setuptools import find_packages, setup

setup(
    name="jsrepl",
    version="0.1.0",
    description="Drive an interactive JavaScript REPL from editors and scripts",
    packages=find_packages(include=["jsrepl", "jsrepl.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pexpect>=4.8",
    ],
    entry_points={
        "console_scripts": [
            "jsrepl=jsrepl.cli:main",
        ],
    },
)
