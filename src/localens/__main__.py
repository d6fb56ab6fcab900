"""Allow ``python -m localens``."""

from localens.cli.main import main

if __name__ == "__main__":
    main()
