from setuptools import setup, find_packages

setup(
    name="budget-optimizer",
    version="1.0.0",
    author="Budget Optimizer Team",
    description="Integer budget-allocation engine for rebalancing a portfolio toward target ETF weights",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={
        "allocation_base": ["py.typed"],
        "optimizer_config": ["py.typed"],
        "budget_optimizer": ["py.typed"],
    },
    install_requires=[
        "pydantic>=2.11,<3",
        "PyYAML>=6.0.2",
        "redis>=5.0.1",
        "dependency-injector>=4.41",
        "ortools>=9.10",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "budget-optimizer=budget_optimizer.__main__:main",
        ],
    },
    python_requires=">=3.11",
)
