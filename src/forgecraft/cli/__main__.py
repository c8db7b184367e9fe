"""CLI entry point for forgecraft.cli module.

Enables execution via: python -m forgecraft.cli
"""

from forgecraft.cli.queue import main

if __name__ == "__main__":
    main()
