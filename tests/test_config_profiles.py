"""
Configuration, tenant profile and command-line tests
"""

import asyncio
import json

import pytest

from m365_admin_console import __main__ as cli
from m365_admin_console.__main__ import build_config, parse_args, run_interactive
from m365_admin_console.config import MIN_SETTLE_SECONDS, ConsoleConfig
from m365_admin_console.profiles import ProfileStore, TenantProfile, resolve_profile


def _profile(name, tenant="t-1"):
    return TenantProfile(
        name=name,
        tenant_id=tenant,
        client_id="c-1",
        organization=f"{name}.onmicrosoft.com",
    )


def test_profile_store_persists(tmp_path):
    path = tmp_path / "profiles.json"
    store = ProfileStore.load(path)
    store.add(_profile("contoso"))
    store.add(_profile("fabrikam", tenant="t-2"), set_default=True)

    reloaded = ProfileStore.load(path)
    assert reloaded.default_profile == "fabrikam"
    assert [p.name for p in reloaded.list_profiles()] == ["contoso", "fabrikam"]
    assert reloaded.get("CONTOSO").organization == "contoso.onmicrosoft.com"
    assert resolve_profile(path=path).tenant_id == "t-2"


def test_removing_default_picks_another(tmp_path):
    path = tmp_path / "profiles.json"
    store = ProfileStore.load(path)
    store.add(_profile("contoso"))
    store.add(_profile("fabrikam"))

    assert store.remove("contoso")
    assert not store.remove("contoso")
    assert ProfileStore.load(path).default_profile == "fabrikam"


def test_malformed_profiles_file(tmp_path):
    path = tmp_path / "profiles.json"
    path.write_text("{not json", encoding="utf-8")
    assert ProfileStore.load(path).profiles == {}


def test_config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "auth": {
            "mode": "delegated",
            "delegated": {"tenant_id": "t", "client_id": "c", "admin_upn": "admin@contoso.com"},
        },
        "exchange": {"organization": "contoso.onmicrosoft.com", "settle_seconds": 2, "unknown": 1},
        "verbose": True,
    }), encoding="utf-8")

    config = ConsoleConfig.from_file(path)

    assert config.auth.mode == "delegated"
    assert config.auth.delegated.admin_upn == "admin@contoso.com"
    assert config.exchange.settle_seconds == 2
    assert config.exchange.read_only is False
    assert config.verbose


def test_config_file_raises_settle_wait_to_floor(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"exchange": {"settle_seconds": 0}}), encoding="utf-8")

    assert ConsoleConfig.from_file(path).exchange.settle_seconds == MIN_SETTLE_SECONDS


def test_command_line_overrides(tmp_path):
    args = parse_args([
        "search",
        "--tenant-id", "t-1",
        "--client-id", "c-1",
        "--organization", "contoso.onmicrosoft.com",
        "--read-only",
        "--settle-seconds", "0",
        "--output-dir", str(tmp_path),
    ])

    config = build_config(args)

    assert args.command == "search"
    assert config.auth.mode == "certificate"
    assert config.auth.certificate.tenant_id == "t-1"
    assert config.exchange.organization == "contoso.onmicrosoft.com"
    assert config.exchange.read_only
    assert config.exchange.settle_seconds == MIN_SETTLE_SECONDS
    assert config.output.audit_dir == tmp_path / "audit"


def test_delegated_command_line():
    args = parse_args([
        "calendar", "--delegated",
        "--tenant-id", "t-1", "--client-id", "c-1",
        "--admin-upn", "admin@contoso.com",
    ])

    config = build_config(args)

    assert config.auth.mode == "delegated"
    assert config.auth.delegated.admin_upn == "admin@contoso.com"
    assert config.auth.certificate is None


def test_missing_credentials_exit(monkeypatch, tmp_path):
    monkeypatch.setattr("m365_admin_console.__main__.resolve_profile", lambda name=None: None)
    with pytest.raises(SystemExit):
        build_config(parse_args(["calendar"]))


class _CancelledConsole:
    async def run(self):
        raise asyncio.CancelledError()


class _FinishedConsole:
    async def run(self):
        return None


@pytest.mark.asyncio
async def test_cancelled_menu_reports_interruption(capsys):
    assert await run_interactive(_CancelledConsole()) is False
    assert "Interrupted." in capsys.readouterr().out
    assert await run_interactive(_FinishedConsole()) is True


def test_keyboard_interrupt_exits_130(monkeypatch):
    async def _interrupted(argv=None):
        raise KeyboardInterrupt

    monkeypatch.setattr(cli, "main_async", _interrupted)
    with pytest.raises(SystemExit) as exc:
        cli.main(["calendar"])
    assert exc.value.code == 130
