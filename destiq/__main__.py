"""Main entry point when executing destiq as a package.

This allows running the package using python -m destiq.
"""

from destiq.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
