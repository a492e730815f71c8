import setuptools

setuptools.setup(
    name="shard-placement-modeling",
    version="0.1.0",
    description=(
        "Models deterministic replica placement over a fixed set of nodes "
        "and the leader failover caused by losing one node"
    ),
    python_requires=">=3.10",
    packages=setuptools.find_packages(exclude=("tests*",)),
    install_requires=[
        "pydantic>2.0",
        "scipy",
        "numpy",
    ],
    extras_require={
        "test": ["pytest", "hypothesis"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
    entry_points={
        "console_scripts": [
            "shard-layout = shard_placement_modeling.tools.shard_layout:main",
        ]
    },
)
