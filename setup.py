from setuptools import setup, find_namespace_packages

setup(
    name="case-intake-gateway",
    version="1.0.0",
    packages=find_namespace_packages(include=["intake", "intake.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.115",
        "pydantic>=2.7",
        "pydantic-settings>=2.7",
        "httpx>=0.27",
        "uvicorn[standard]>=0.30",
        "maxminddb>=2.6",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "respx>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "intake-gateway=intake.app.main:run",
        ],
    },
)
