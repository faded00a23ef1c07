from setuptools import setup, find_packages

setup(
    name="agent-hedge-fund",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "web3>=7.0.0",
        "requests>=2.31.0",
        "python-dotenv>=1.0.0",
        "eth-account>=0.13.0",
        "click>=8.1.0",
        "rich>=13.0.0",
        "schedule>=1.2.0",
        "fastapi>=0.110.0",
        "uvicorn>=0.29.0",
        "pydantic>=2.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "httpx>=0.27.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "hedgefund=agent_hedge_fund.cli:main",
        ],
    },
    python_requires=">=3.10",
)
