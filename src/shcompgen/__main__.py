"""Allow ``python -m shcompgen``."""

from shcompgen import cli

if __name__ == "__main__":
    cli.main()
