"""
Module entry point: python -m entity_scaffold
"""
from .cli import main

if __name__ == "__main__":
    main()
