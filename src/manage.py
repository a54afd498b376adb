"""DineStream database management CLI.

Provides commands to create and drop the database schema, and to load a
starter menu.

Usage:
    python src/manage.py setup-db              # Create all tables
    python src/manage.py drop-db               # Drop all tables
    python src/manage.py seed-menu             # Add the starter menu
    python src/manage.py setup-db --url sqlite:///./other.db
"""

import argparse
import sys

import bootstrap  # noqa: F401  (registers every model)
from ordering.menu import MenuCatalog
from shared.config import get_settings
from shared.database import Database

STARTER_MENU = [
    {"name": "Margherita Pizza", "price": 9.50, "category": "pizza", "description": "Tomato, mozzarella, basil"},
    {"name": "Pepperoni Pizza", "price": 11.00, "category": "pizza", "description": "Tomato, mozzarella, pepperoni"},
    {"name": "Garlic Bread", "price": 4.00, "category": "sides"},
    {"name": "House Salad", "price": 5.50, "category": "sides"},
    {"name": "Tiramisu", "price": 6.00, "category": "desserts"},
    {"name": "Lemonade", "price": 2.75, "category": "drinks"},
]


def _database(url: str | None) -> Database:
    settings = get_settings()
    return Database(url or settings.database_url, echo=settings.database_echo)


def setup_database(url: str | None = None) -> None:
    """Create every table."""
    database = _database(url)
    print(f"Creating schema on {database.dialect}...")
    database.create_all()
    database.dispose()
    print("Done.")


def drop_database(url: str | None = None) -> None:
    """Drop every table."""
    database = _database(url)
    print(f"Dropping schema on {database.dialect}...")
    database.drop_all()
    database.dispose()
    print("Done.")


def seed_menu(url: str | None = None) -> None:
    database = _database(url)
    database.create_all()
    catalog = MenuCatalog(database)
    existing = {item.name for item in catalog.list_items()}
    for entry in STARTER_MENU:
        if entry["name"] in existing:
            print(f"  skipping {entry['name']} (already on the menu)")
            continue
        catalog.add(**entry)
        print(f"  added {entry['name']}")
    database.dispose()
    print("Done.")


def main():
    parser = argparse.ArgumentParser(description="DineStream database management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("setup-db", "Create all database tables"),
        ("drop-db", "Drop all database tables"),
        ("seed-menu", "Add the starter menu"),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("--url", help="Database URL (default: DINESTREAM_DATABASE_URL)")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database(args.url)
    elif args.command == "drop-db":
        drop_database(args.url)
    elif args.command == "seed-menu":
        seed_menu(args.url)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
