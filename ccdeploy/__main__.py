"""Entry point for ``python -m ccdeploy``."""

from .cli import main

if __name__ == "__main__":
    main()
