"""CLI entry point for vaultmint.cli module.

Enables execution via: python -m vaultmint.cli (runs the job workers)
"""

from vaultmint.cli.run_worker import main

if __name__ == "__main__":
    main()
