"""Entry point for running sql_tooling as a module."""

from sql_tooling.server import cli_entry

if __name__ == "__main__":
    cli_entry()
