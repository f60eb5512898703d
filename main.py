#!/usr/bin/env python3
"""
MediLog device CLI -- sign in once, stay signed in across runs.

Usage:
  python main.py register --email you@example.com --name "Your Name"
  python main.py login --email you@example.com
  python main.py whoami
  python main.py profiles
  python main.py use-profile prof_1234
  python main.py use-profile --clear
  python main.py logout

Every command except register/login starts with the bootstrap sequence:
stored tokens are checked against the server, refreshed once if the access
token has expired, and cleared if they cannot be used.

Environment variables:
  MEDILOG_API_BASE_URL        API root (default http://localhost:8000/api/v1)
  MEDILOG_CLIENT_STATE_PATH   Session file (default ~/.medilog/session.json, mode 0600)
  MEDILOG_REQUEST_TIMEOUT_SECONDS
"""

import argparse
import getpass
import logging
from typing import Any, Optional

from client.api import ApiClient, ApiError
from client.bootstrap import BootState, BootstrapController
from client.session import ActiveProfileSelection, SessionClient
from client.storage import FileSecureStorage, StorageError
from core.config import ClientSettings, get_client_settings


def build_controller(settings: ClientSettings, http: Any = None) -> BootstrapController:
    """Wire storage, session, API client and controller from settings."""
    storage = FileSecureStorage(settings.client_state_path)
    api = ApiClient(settings.api_base_url, http=http, timeout=settings.request_timeout_seconds)
    return BootstrapController(SessionClient(storage), api, ActiveProfileSelection(storage))


def _password(args: argparse.Namespace) -> str:
    return args.password or getpass.getpass("Password: ")


def _print_account(account: dict[str, Any]) -> None:
    print(f"  Signed in as {account.get('name')} <{account.get('email')}>")


def _require_session(controller: BootstrapController) -> bool:
    if controller.run() is BootState.AUTHENTICATED:
        return True
    print("  Not signed in. Run: python main.py login --email <email>")
    return False


def cmd_register(controller: BootstrapController, args: argparse.Namespace) -> int:
    account = controller.register(args.email, _password(args), args.name)
    _print_account(account)
    return 0


def cmd_login(controller: BootstrapController, args: argparse.Namespace) -> int:
    account = controller.login(args.email, _password(args))
    _print_account(account)
    return 0


def cmd_whoami(controller: BootstrapController, args: argparse.Namespace) -> int:
    if not _require_session(controller):
        return 1
    _print_account(controller.session.account or {})
    active = controller.selection.profile_id if controller.selection else None
    print(f"  Active profile: {active or '(none)'}")
    return 0


def cmd_profiles(controller: BootstrapController, args: argparse.Namespace) -> int:
    if not _require_session(controller):
        return 1
    profiles = controller.api.list_profiles(controller.session.access_token)
    if not profiles:
        print("  No profiles yet.")
        return 0
    active = controller.selection.profile_id if controller.selection else None
    for p in profiles:
        marker = "*" if p["id"] == active else " "
        print(f"  {marker} {p['id']}  {p['fullName']} ({p['relationToAccount']})")
    return 0


def cmd_use_profile(controller: BootstrapController, args: argparse.Namespace) -> int:
    if not _require_session(controller):
        return 1
    if args.clear:
        controller.selection.clear()
        print("  Active profile cleared.")
        return 0
    if not args.profile_id:
        print("  [!] Give a profile id or --clear.")
        return 2
    # Server-side ownership check; a foreign id comes back as PROFILE_NOT_FOUND
    profile = controller.api.get_profile(controller.session.access_token, args.profile_id)
    controller.selection.set(profile["id"])
    print(f"  Active profile: {profile['id']} ({profile['fullName']})")
    return 0


def cmd_logout(controller: BootstrapController, args: argparse.Namespace) -> int:
    controller.logout()
    print("  Signed out.")
    return 0


COMMANDS = {
    "register": cmd_register,
    "login": cmd_login,
    "whoami": cmd_whoami,
    "profiles": cmd_profiles,
    "use-profile": cmd_use_profile,
    "logout": cmd_logout,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="medilog",
        description="MediLog device client.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py register --email you@example.com --name "Your Name"
  python main.py login --email you@example.com
  python main.py use-profile prof_1234
  MEDILOG_API_BASE_URL=https://api.example.com/api/v1 python main.py whoami
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log client activity to stderr")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("register", help="Create an account and sign in")
    p.add_argument("--email", required=True)
    p.add_argument("--name", required=True)
    p.add_argument("--password", help="Prompted for if omitted")

    p = sub.add_parser("login", help="Sign in with email and password")
    p.add_argument("--email", required=True)
    p.add_argument("--password", help="Prompted for if omitted")

    sub.add_parser("whoami", help="Show the signed-in account")
    sub.add_parser("profiles", help="List the account's profiles")

    p = sub.add_parser("use-profile", help="Select the active profile")
    p.add_argument("profile_id", nargs="?", metavar="PROFILE-ID")
    p.add_argument("--clear", action="store_true", help="Forget the active profile")

    sub.add_parser("logout", help="Sign out and forget stored tokens")
    return parser


def main(argv: Optional[list[str]] = None, http: Any = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 2

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    controller = build_controller(get_client_settings(), http=http)
    try:
        return COMMANDS[args.command](controller, args)
    except ApiError as e:
        print(f"  [!] {e.message} ({e.code})")
        return 1
    except StorageError as e:
        print(f"  [!] Could not save session: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
