"""Allow ``python -m backend.catalog_cli``."""
from .app import app


def main() -> None:
    app(prog_name="mediadex")


if __name__ == "__main__":
    main()
