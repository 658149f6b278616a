"""Main entry point when executing photostream as a package.

This allows running the package using python -m photostream.
"""

from photostream.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
