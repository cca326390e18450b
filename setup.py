from setuptools import setup, find_packages

setup(
    name="bangs-reminders",
    version="0.1.0",
    packages=find_packages(include=["bangs", "bangs.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy>=2.0,<2.1",
        "alembic",
        "psycopg2-binary",
        "python-dotenv",
        "pydantic>=2",
        "pydantic-settings",
        "celery",
        "prometheus-client",
        "prometheus-fastapi-instrumentator",
        "requests",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
)
