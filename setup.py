"""
Entity Scaffold - Setup Configuration
"""
from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Core requirements (without optional dependencies)
core_requirements = [
    "pydantic>=2.0.0",
    "pyyaml>=6.0.0",
    "python-dotenv>=1.0.0",
    "typer>=0.9.0",
    "inflect>=6.0.0",
]

# Optional database drivers
mysql_requirements = ["mysql-connector-python>=8.0.0"]
postgresql_requirements = ["psycopg2-binary>=2.9.0"]

# Runtime of the generated entity modules
orm_requirements = ["sqlalchemy>=2.0.0"]

# Development requirements
dev_requirements = [
    "pytest>=7.0.0",
    "pytest-cov>=4.0.0",
    "sqlalchemy>=2.0.0",
]

setup(
    name="entity-scaffold",
    version="1.0.0",
    author="Entity Scaffold Contributors",
    author_email="",
    description="Reverse engineer a relational schema into mapping files and SQLAlchemy entities",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database",
        "Topic :: Software Development :: Code Generators",
    ],
    python_requires=">=3.9",
    install_requires=core_requirements,
    extras_require={
        "mysql": mysql_requirements,
        "postgresql": postgresql_requirements,
        "orm": orm_requirements,
        "all-databases": mysql_requirements + postgresql_requirements,
        "dev": dev_requirements,
        "all": (
            mysql_requirements +
            postgresql_requirements +
            orm_requirements +
            dev_requirements
        ),
    },
    entry_points={
        "console_scripts": [
            "entity-scaffold=entity_scaffold.cli:main",
        ],
    },
    keywords=[
        "sql",
        "orm",
        "sqlalchemy",
        "reverse-engineering",
        "code-generation",
        "database",
    ],
)
