import setuptools

setuptools.setup(
    name="region-balancer",
    version="0.1.0",
    description="Stochastic region placement balancer for replicated, rack aware "
    "storage clusters",
    python_requires=">=3.10",
    packages=setuptools.find_packages(exclude=("tests*",)),
    install_requires=[
        "pydantic>2.0",
        "numpy",
        "isodate",
    ],
    extras_require={
        "test": ["pytest", "hypothesis"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
    entry_points={
        "console_scripts": [
            "balance-cluster = region_balancer.tools.balance_cluster:main",
        ]
    },
)
