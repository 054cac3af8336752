from setuptools import setup, find_packages

setup(
    name="block-propagation-simulator",
    version="0.1.0",
    author="Block Propagation Simulator contributors",
    description="A discrete-event simulator of block propagation in peer-to-peer networks, with branching ledgers and trust aggregation.",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "examples"]),
    install_requires=[
        "simpy",
        "pandas",
        "matplotlib",
        "rich",
        "tqdm",
    ],
    extras_require={
        "dev": [
            "pytest",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.8",
)
