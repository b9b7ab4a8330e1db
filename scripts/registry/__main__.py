"""
Entry point for running the registry module as a script.

Usage:
    python -m scripts.registry states
    python -m scripts.registry load MA roster.csv
"""

from .cli import main

if __name__ == '__main__':
    main()
