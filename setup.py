from setuptools import setup, find_namespace_packages

setup(
    name="dosewatch",
    version="0.1.0",
    packages=find_namespace_packages(include=["dosewatch", "dosewatch.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy>=2.0",
        "alembic",
        "psycopg2-binary",
        "python-jose[cryptography]",
        "python-dotenv",
        "pydantic>=2",
        "pydantic-settings",
        "celery",
        "prometheus-client",
        "prometheus-fastapi-instrumentator",
        "tzdata",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
)
