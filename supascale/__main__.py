"""CLI entry point -- python -m supascale."""

from supascale.cli import main

if __name__ == "__main__":
    main()
