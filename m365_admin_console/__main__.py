"""
M365 Admin Console — Main entry point

Usage:
    python -m m365_admin_console search                      # compliance search console
    python -m m365_admin_console calendar                    # calendar permission console
    python -m m365_admin_console calendar --profile contoso  # named profile
    python -m m365_admin_console search --delegated          # device-code auth flow
    python -m m365_admin_console calendar --read-only        # block every change

Profile management:
    python -m m365_admin_console profile add <name> --tenant-id ... --client-id ... --organization ...
    python -m m365_admin_console profile list
    python -m m365_admin_console profile remove <name>
    python -m m365_admin_console profile set-default <name>
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path
from typing import Optional

from .config import (
    ConsoleConfig,
    CertificateAuth,
    DelegatedAuth,
    EXCHANGE_SCOPE,
    COMPLIANCE_SCOPE,
    MIN_SETTLE_SECONDS,
)
from .safety.guardian import CmdletGuardian
from .auth.authenticator import Authenticator, AuthenticationError
from .exchange.client import ExchangeAdminClient
from .remote.exchange import ExchangeAdminService
from .compliance.orchestrator import SearchOrchestrator
from .console.search_menu import SearchConsole
from .console.calendar_menu import CalendarConsole
from .reporting import export_audit_log
from .profiles import ProfileStore, TenantProfile, resolve_profile

logger = logging.getLogger("m365_admin_console")

CONSOLE_TITLES = {
    "search": "M365 ADMIN CONSOLE -- COMPLIANCE SEARCH",
    "calendar": "M365 ADMIN CONSOLE -- CALENDAR PERMISSIONS",
}


# ---------------------------------------------------------------------------
# Profile management sub-commands
# ---------------------------------------------------------------------------

def _cmd_profile(args: argparse.Namespace) -> int:
    """Handle `profile add|list|remove|set-default` sub-commands."""
    action = args.profile_action

    if action == "list":
        return _profile_list()
    elif action == "add":
        return _profile_add(args)
    elif action == "remove":
        return _profile_remove(args)
    elif action == "set-default":
        return _profile_set_default(args)
    return 0


def _profile_list() -> int:
    store = ProfileStore.load()
    profiles = store.list_profiles()
    if not profiles:
        print("No profiles configured. Add one with:\n")
        print("  python -m m365_admin_console profile add <name> \\")
        print("    --tenant-id <GUID> --client-id <GUID> --organization contoso.onmicrosoft.com")
        return 0

    print(f"\n  {'Name':<20s} {'Organization':<32s} {'Tenant ID':<38s} {'Default'}")
    print(f"  {'─'*20} {'─'*32} {'─'*38} {'─'*7}")
    for p in profiles:
        default_marker = "  ✓" if p.name == store.default_profile else ""
        print(f"  {p.name:<20s} {p.organization:<32s} {p.tenant_id:<38s}{default_marker}")
    print()
    return 0


def _profile_add(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    name = args.profile_name
    if store.get(name):
        print(f"  Profile '{name}' already exists. It will be overwritten.")

    profile = TenantProfile(
        name=name,
        tenant_id=args.tenant_id,
        client_id=args.client_id,
        organization=args.organization or "",
        cert_path=args.cert_path or "./base64.txt",
        admin_upn=args.admin_upn or "",
        notes=args.notes or "",
    )
    set_as_default = args.set_default or not store.profiles
    store.add(profile, set_default=set_as_default)
    print(f"  ✅ Profile '{name}' saved.")
    if set_as_default:
        print(f"  ✅ Set as default profile.")
    return 0


def _profile_remove(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    if store.remove(args.profile_name):
        print(f"  ✅ Profile '{args.profile_name}' removed.")
    else:
        print(f"  ❌ Profile '{args.profile_name}' not found.")
    return 0


def _profile_set_default(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    if store.set_default(args.profile_name):
        print(f"  ✅ Default profile set to '{args.profile_name}'.")
    else:
        print(f"  ❌ Profile '{args.profile_name}' not found.")
    return 0


def _add_session_options(parser: argparse.ArgumentParser):
    parser.add_argument(
        "--profile", "-p",
        type=str,
        default=None,
        help="Tenant profile name to use (run 'profile list' to see available)",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Path to JSON configuration file",
    )
    parser.add_argument(
        "--delegated",
        action="store_true",
        help="Use delegated (device-code) authentication instead of certificate",
    )
    parser.add_argument(
        "--admin-upn",
        type=str,
        default=None,
        help="Administrator sign-in name (delegated auth)",
    )
    parser.add_argument(
        "--cert-path",
        type=Path,
        help="Path to base64-encoded certificate file (overrides profile)",
    )
    parser.add_argument("--tenant-id", type=str, default=None, help="Tenant ID (overrides profile)")
    parser.add_argument("--client-id", type=str, default=None, help="Client ID (overrides profile)")
    parser.add_argument(
        "--organization",
        type=str,
        default=None,
        help="Tenant organization domain, e.g. contoso.onmicrosoft.com (overrides profile)",
    )
    parser.add_argument(
        "--output-dir", "-o",
        type=Path,
        default=None,
        help="Directory for audit logs (default: ./m365_admin_output)",
    )
    parser.add_argument(
        "--settle-seconds",
        type=float,
        default=None,
        help="Wait between creating and starting a compliance search",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Block every cmdlet that would change the tenant",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="m365_admin_console",
        description="M365 Admin Console — compliance search and calendar permissions",
    )
    subparsers = parser.add_subparsers(dest="command", help="Consoles and management commands")

    for name, help_text in (
        ("search", "Compliance search and export console"),
        ("calendar", "Calendar permission console"),
    ):
        _add_session_options(subparsers.add_parser(name, help=help_text))

    prof_parser = subparsers.add_parser("profile", help="Manage tenant profiles")
    prof_sub = prof_parser.add_subparsers(dest="profile_action", help="Profile actions")

    add_p = prof_sub.add_parser("add", help="Add or update a tenant profile")
    add_p.add_argument("profile_name", help="Short name for the profile (e.g. 'contoso-prod')")
    add_p.add_argument("--tenant-id", required=True, help="Entra tenant ID (GUID)")
    add_p.add_argument("--client-id", required=True, help="App registration client ID (GUID)")
    add_p.add_argument("--organization", help="Organization domain, e.g. contoso.onmicrosoft.com")
    add_p.add_argument("--cert-path", default="./base64.txt", help="Path to base64-encoded PFX (default: ./base64.txt)")
    add_p.add_argument("--admin-upn", help="Administrator sign-in name for delegated auth")
    add_p.add_argument("--notes", help="Optional admin notes")
    add_p.add_argument("--set-default", action="store_true", help="Set as default profile")

    prof_sub.add_parser("list", help="List all configured profiles")

    rm_p = prof_sub.add_parser("remove", help="Remove a profile")
    rm_p.add_argument("profile_name", help="Name of the profile to remove")

    sd_p = prof_sub.add_parser("set-default", help="Set the default profile")
    sd_p.add_argument("profile_name", help="Name of the profile to set as default")

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ConsoleConfig:
    """Build console configuration from profile, CLI args, or config file."""
    if args.config and args.config.exists():
        config = ConsoleConfig.from_file(args.config)
    else:
        config = ConsoleConfig()

    if args.delegated:
        config.auth.mode = "delegated"

    profile = None
    if args.profile:
        profile = resolve_profile(args.profile)
        if not profile:
            print(f"\n❌ Profile '{args.profile}' not found. Use 'profile list' to see available profiles.")
            sys.exit(1)
    elif not args.config and not args.tenant_id:
        profile = resolve_profile()

    if profile:
        tenant_id = args.tenant_id or profile.tenant_id
        client_id = args.client_id or profile.client_id
        cert_path = str(args.cert_path) if args.cert_path else profile.resolve_cert_path()
        organization = args.organization or profile.organization
        admin_upn = args.admin_upn or profile.admin_upn
    elif args.tenant_id and args.client_id:
        tenant_id = args.tenant_id
        client_id = args.client_id
        cert_path = str(args.cert_path) if args.cert_path else "./base64.txt"
        organization = args.organization or ""
        admin_upn = args.admin_upn or ""
    elif config.auth.certificate or config.auth.delegated:
        source = config.auth.certificate or config.auth.delegated
        tenant_id = source.tenant_id
        client_id = source.client_id
        cert_path = config.auth.certificate.certificate_path if config.auth.certificate else ""
        organization = args.organization or config.exchange.organization
        admin_upn = args.admin_upn or (config.auth.delegated.admin_upn if config.auth.delegated else "")
    else:
        print("\n❌ No tenant credentials found. Use one of:")
        print("   • --profile <name>             (from saved profiles)")
        print("   • --tenant-id X --client-id Y  (ad-hoc)")
        print("   • --config config.json         (JSON config file)")
        print("\n   To create a profile:")
        print("   python -m m365_admin_console profile add <name> --tenant-id <GUID> --client-id <GUID>")
        sys.exit(1)

    if config.auth.mode == "certificate":
        password = config.auth.certificate.certificate_password if config.auth.certificate else ""
        config.auth.certificate = CertificateAuth(
            tenant_id=tenant_id,
            client_id=client_id,
            certificate_path=cert_path,
            certificate_password=password,
        )
    else:
        config.auth.delegated = DelegatedAuth(
            tenant_id=tenant_id,
            client_id=client_id,
            admin_upn=admin_upn,
        )

    config.exchange.organization = organization
    if args.read_only:
        config.exchange.read_only = True
    if args.settle_seconds is not None:
        config.exchange.settle_seconds = max(MIN_SETTLE_SECONDS, args.settle_seconds)
    if args.output_dir:
        config.output.base_dir = str(args.output_dir)
    config.verbose = config.verbose or args.verbose
    return config


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


async def run_console(command: str, config: ConsoleConfig) -> int:
    """Authenticate, open both admin endpoints, and run the chosen console."""
    guardian = CmdletGuardian(read_only=config.exchange.read_only)
    guardian.print_banner(CONSOLE_TITLES[command])

    session_id = f"{config.output.timestamp}_{uuid.uuid4().hex[:8]}"
    print(f"\n📋 Session ID:   {session_id}")
    print(f"🏢 Organization: {config.exchange.organization or 'unknown'}")

    print("\n🔐 Authenticating...")
    authenticator = Authenticator(config.auth)
    try:
        exchange_token = await authenticator.acquire_token(EXCHANGE_SCOPE)
        compliance_token = ""
        if command == "search":
            compliance_token = await authenticator.acquire_token(COMPLIANCE_SCOPE)
    except AuthenticationError as e:
        print(f"❌ Authentication failed: {e}")
        print("\n   The app registration needs:")
        for role, purpose in Authenticator.list_required_permissions().items():
            print(f"   • {role:<44s} {purpose}")
        return 1
    print("✅ Authentication successful.")

    anchor = authenticator.anchor_mailbox(config.exchange.organization)
    exchange = ExchangeAdminClient(
        config.exchange.exchange_url,
        authenticator.tenant_id,
        exchange_token,
        guardian,
        anchor_mailbox=anchor,
        timeout=config.exchange.request_timeout,
    )
    compliance = ExchangeAdminClient(
        config.exchange.compliance_url,
        authenticator.tenant_id,
        compliance_token,
        guardian,
        anchor_mailbox=anchor,
        timeout=config.exchange.request_timeout,
    )

    async with exchange, compliance:
        service = ExchangeAdminService(exchange, compliance)
        try:
            if command == "search":
                orchestrator = SearchOrchestrator(service, settle_seconds=config.exchange.settle_seconds)
                console = SearchConsole(service, orchestrator)
            else:
                console = CalendarConsole(service)
            await run_interactive(console)
        finally:
            stats = {"exchange": exchange.get_stats(), "compliance": compliance.get_stats()}
            path = export_audit_log(guardian, config.output.audit_dir, session_id, command, stats)
            print(f"\n  📝 Audit log: {path}")

    return 0


async def run_interactive(console) -> bool:
    """
    Run a console's menu loop. Returns False when the operator interrupted it.

    Under asyncio.run, Ctrl-C arrives as cancellation of the main task.
    """
    try:
        await console.run()
    except (KeyboardInterrupt, EOFError, asyncio.CancelledError):
        print("\n\n  Interrupted.")
        return False
    return True


async def main_async(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    if args.command == "profile":
        if not getattr(args, "profile_action", None):
            print("Usage: python -m m365_admin_console profile {add|list|remove|set-default}")
            return 0
        return _cmd_profile(args)

    if args.command not in CONSOLE_TITLES:
        print("Usage: python -m m365_admin_console {search|calendar|profile} [options]")
        return 1

    config = build_config(args)
    configure_logging(config.verbose)
    return await run_console(args.command, config)


def main(argv: Optional[list[str]] = None):
    """Synchronous entry point for `python -m m365_admin_console`."""
    try:
        code = asyncio.run(main_async(argv))
    except KeyboardInterrupt:
        # asyncio.run re-raises the interrupt once the main task has finished
        code = 130
    sys.exit(code)


def main_search():
    """Console script: m365-compliance-search."""
    main(["search", *sys.argv[1:]])


def main_calendar():
    """Console script: m365-calendar-permissions."""
    main(["calendar", *sys.argv[1:]])


if __name__ == "__main__":
    main()
