"""
Tenant profiles — named connection settings for operators who administer
several tenants.

Stored as JSON in ~/.m365_admin_console/profiles.json:

    {
      "default_profile": "contoso-prod",
      "profiles": {
        "contoso-prod": {"tenant_id": "...", "client_id": "...",
                         "organization": "contoso.onmicrosoft.com", ...}
      }
    }

Select one with `--profile <name>`; without it the default profile is used.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger("m365_admin_console.profiles")

_CONFIG_DIR = Path.home() / ".m365_admin_console"
_PROFILES_FILE = _CONFIG_DIR / "profiles.json"
_DEFAULT_CERT_PATH = "./base64.txt"


@dataclass
class TenantProfile:
    """Connection settings for one tenant."""
    name: str
    tenant_id: str
    client_id: str
    organization: str = ""                  # Routes app-only admin calls
    cert_path: str = _DEFAULT_CERT_PATH     # Base64-encoded PFX
    admin_upn: str = ""                     # Delegated sign-in account
    notes: str = ""

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "TenantProfile":
        return cls(
            name=name,
            tenant_id=data["tenant_id"],
            client_id=data["client_id"],
            organization=data.get("organization", ""),
            cert_path=data.get("cert_path", _DEFAULT_CERT_PATH),
            admin_upn=data.get("admin_upn", ""),
            notes=data.get("notes", ""),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        del data["name"]
        return data

    def resolve_cert_path(self) -> str:
        """Expand ~ and anchor relative paths at the working directory."""
        path = Path(self.cert_path).expanduser()
        return str(path if path.is_absolute() else Path.cwd() / path)


@dataclass
class ProfileStore:
    """All saved profiles plus the name of the default one."""
    profiles: dict[str, TenantProfile] = field(default_factory=dict)
    default_profile: str = ""
    path: Path = _PROFILES_FILE

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ProfileStore":
        """Read the store; a missing or unreadable file gives an empty store."""
        store = cls(path=path or _PROFILES_FILE)
        if not store.path.exists():
            return store
        try:
            data = json.loads(store.path.read_text(encoding="utf-8"))
            store.profiles = {
                name: TenantProfile.from_dict(name, entry)
                for name, entry in data.get("profiles", {}).items()
            }
            store.default_profile = data.get("default_profile", "")
        except (json.JSONDecodeError, KeyError) as e:
            logger.warning(f"Ignoring unreadable profile store {store.path}: {e}")
            print(f"  ⚠  Could not read {store.path}: {e}")
            store.profiles = {}
            store.default_profile = ""
        return store

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "default_profile": self.default_profile,
            "profiles": {name: p.to_dict() for name, p in self.profiles.items()},
        }
        self.path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")

    def add(self, profile: TenantProfile, set_default: bool = False) -> None:
        """Insert or replace; the first profile saved becomes the default."""
        self.profiles[profile.name] = profile
        if set_default or not self.default_profile:
            self.default_profile = profile.name
        self.save()

    def remove(self, name: str) -> bool:
        if self.profiles.pop(name, None) is None:
            return False
        if self.default_profile == name:
            self.default_profile = next(iter(self.profiles), "")
        self.save()
        return True

    def get(self, name: str) -> Optional[TenantProfile]:
        """Case-insensitive lookup."""
        return next(
            (p for key, p in self.profiles.items() if key.lower() == name.lower()),
            None,
        )

    def get_default(self) -> Optional[TenantProfile]:
        if self.default_profile in self.profiles:
            return self.profiles[self.default_profile]
        return next(iter(self.profiles.values()), None)

    def set_default(self, name: str) -> bool:
        if name not in self.profiles:
            return False
        self.default_profile = name
        self.save()
        return True

    def list_profiles(self) -> list[TenantProfile]:
        return sorted(self.profiles.values(), key=lambda p: p.name)


def resolve_profile(
    profile_name: Optional[str] = None,
    path: Optional[Path] = None,
) -> Optional[TenantProfile]:
    """Named profile if given, otherwise the default; None when nothing is saved."""
    store = ProfileStore.load(path)
    return store.get(profile_name) if profile_name else store.get_default()
