"""Command-line interface for the plots administration service."""

from __future__ import annotations
import argparse
import logging
import sys
from dataclasses import replace
from getpass import getpass
from pathlib import Path
from typing import Sequence

from plots.config import Settings
from plots.console import STATUSES, AdminConsole, ConsoleError, PlotsClient, TokenStore
from plots.database import Database
from plots.errors import DatabaseUnavailableError, PlotsError

logger = logging.getLogger("plots.main")

_DEFAULT_SERVICE_URL = "http://localhost:3000"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Plots administration service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    init_parser = subparsers.add_parser("init-db", help="Create tables and the admin user, then exit")
    init_parser.add_argument(
        "--no-seed",
        dest="seed",
        action="store_false",
        default=None,
        help="Do not insert sample plots into an empty store",
    )

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: PLOTS_HOST or 0.0.0.0)")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Listening port (default: PLOTS_PORT or 3000)",
    )
    serve_parser.add_argument(
        "--no-seed",
        dest="seed",
        action="store_false",
        default=None,
        help="Do not insert sample plots into an empty store",
    )

    fixtures_parser = subparsers.add_parser("load-fixtures", help="Load plots from a YAML fixture file")
    fixtures_parser.add_argument("path", type=Path, help="YAML file with a top-level 'plots' list")

    admin_parser = subparsers.add_parser("admin", help="Launch the interactive administration console")
    admin_parser.add_argument(
        "--service-url",
        default=None,
        help=f"Base URL of a running plots service (default: {_DEFAULT_SERVICE_URL})",
    )
    admin_parser.add_argument(
        "--session-file",
        type=Path,
        default=None,
        help="Where the console keeps its session token",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "admin", "init-db", "load-fixtures"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _open_database(settings: Settings) -> Database:
    database = Database.from_settings(settings)
    try:
        database.connect()
    except DatabaseUnavailableError as exc:
        database.close()
        logger.error("Failed to start: %s", exc)
        raise SystemExit(1) from exc
    return database


def _initialise_database(database: Database, settings: Settings) -> Database:
    database.initialize(
        admin_username=settings.admin_username,
        admin_email=settings.admin_email,
        admin_password=settings.admin_password,
        seed=settings.seed,
    )
    logger.info("Database initialised")
    return database


def _serve(*, database: Database, settings: Settings) -> None:
    from plots.api import create_app
    import uvicorn

    logger.info("Starting plots service on http://%s:%s", settings.host, settings.port)
    logger.info("Health check available at http://localhost:%s/health", settings.port)

    app = create_app(settings=settings, database=database)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")


def _load_fixtures(database: Database, path: Path) -> int:
    from plots.fixtures import load_fixture_file

    drafts = load_fixture_file(path)
    inserted = database.load_plots(drafts)
    print(f"Loaded {inserted} of {len(drafts)} plot(s) from {path}.")
    return inserted


def _run_admin_cli(console: AdminConsole) -> None:
    """Provide an interactive plots console for administrators."""

    print("Plots Administration Console")
    print("Press Ctrl+C at any time to exit.\n")

    if console.restore_session():
        print(f"Resumed session for {console.user['username']}.\n")

    try:
        _print_plots(console, console.refresh())
        while True:
            print("Select an option:")
            print("  1) List plots")
            print("  2) Change filters")
            print("  3) Log in")
            print("  4) Change plot status")
            print("  5) Add a plot")
            print("  6) Delete a plot")
            print("  7) Log out")
            print("  8) Exit")

            choice = input("Enter choice [1-8]: ").strip()

            try:
                if choice == "1":
                    _print_plots(console, console.refresh())
                elif choice == "2":
                    _edit_filters(console)
                elif choice == "3":
                    _login(console)
                elif choice == "4":
                    _change_status(console)
                elif choice == "5":
                    _add_plot(console)
                elif choice == "6":
                    _delete_plot(console)
                elif choice == "7":
                    console.logout()
                    print("Logged out.")
                elif choice == "8":
                    print("Goodbye!")
                    return
                else:
                    print("Invalid selection. Please choose a number from the menu.\n")
            except ConsoleError as exc:
                print(f"Error: {exc}")

            print()
    except KeyboardInterrupt:
        print("\nExiting administration console.")


def _print_plots(console: AdminConsole, plots: list) -> None:
    active = {name: value for name, value in console.filters.items() if value}
    if active:
        print("Filters: " + ", ".join(f"{name}={value}" for name, value in active.items()))
    if not plots:
        print("No plots match the current filters.")
        return

    counts = console.summary()
    print(", ".join(f"{count} {status}" for status, count in counts.items()))
    print(f"{'Number':<8}  {'Location':<24}  {'Size':<12}  {'Price':>12}  {'Status':<10}  ID")
    print("-" * 100)
    for plot in plots:
        print(
            f"{plot['plot_number']:<8}  {plot['location'][:24]:<24}  {plot['size'][:12]:<12}  "
            f"{plot['price']:>12}  {plot['status']:<10}  {plot['id']}"
        )


def _edit_filters(console: AdminConsole) -> None:
    print("Leave a value blank to clear that filter.")
    for name in console.filters:
        value = input(f"{name} [{console.filters[name]}]: ")
        plots = console.set_filter(name, value)
    _print_plots(console, plots)


def _login(console: AdminConsole) -> None:
    username = input("Username: ").strip()
    if not username:
        print("Login cancelled.")
        return
    password = getpass("Password: ")
    user = console.login(username, password)
    print(f"Logged in as {user['username']} <{user['email']}>.")


def _change_status(console: AdminConsole) -> None:
    plot_id = input("Plot ID: ").strip()
    status = input(f"New status ({'/'.join(STATUSES)}): ").strip().lower()
    updated = console.change_status(plot_id, status)
    print(f"Plot {updated['plot_number']} is now {updated['status']}.")


def _add_plot(console: AdminConsole) -> None:
    print("\nCreate a new plot (leave the number blank to cancel).")
    plot_number = input("Plot number: ").strip()
    if not plot_number:
        print("Plot creation cancelled.")
        return
    payload = {
        "plotNumber": plot_number,
        "location": input("Location: ").strip(),
        "size": input("Size: ").strip(),
        "price": input("Price: ").strip(),
        "status": input("Status [available]: ").strip().lower() or "available",
        "amenities": [item.strip() for item in input("Amenities (comma separated): ").split(",") if item.strip()],
    }
    description = input("Description: ").strip()
    if description:
        payload["description"] = description
    created = console.add_plot(payload)
    print(f"Created plot {created['plot_number']} ({created['id']}).")


def _delete_plot(console: AdminConsole) -> None:
    plot_id = input("Plot ID: ").strip()
    if input(f"Delete plot {plot_id}? [y/N]: ").strip().lower() != "y":
        print("Deletion cancelled.")
        return
    deleted = console.remove_plot(plot_id)
    print(f"Deleted plot {deleted['plot_number']}.")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = Settings.from_env()

    if args.command == "admin":
        client = PlotsClient(args.service_url or _DEFAULT_SERVICE_URL)
        try:
            _run_admin_cli(AdminConsole(client, TokenStore(args.session_file)))
        finally:
            client.close()
        return

    overrides = {}
    if getattr(args, "seed", None) is not None:
        overrides["seed"] = args.seed
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None):
        overrides["port"] = args.port
    settings = replace(settings, **overrides)

    database = _open_database(settings)
    try:
        _initialise_database(database, settings)
        if args.command == "serve":
            _serve(database=database, settings=settings)
        elif args.command == "load-fixtures":
            try:
                _load_fixtures(database, args.path)
            except (PlotsError, OSError) as exc:
                raise SystemExit(f"Failed to load fixtures: {exc}") from exc
        elif args.command == "init-db":
            print("Database initialisation complete.")
    finally:
        database.close()


if __name__ == "__main__":
    main()
