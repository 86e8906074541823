"""
Configuration module for M365 Admin Console.
Defines all tunable parameters, admin API endpoints, and operational settings.
"""

from __future__ import annotations

import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone


# ─── Tenant Authentication ───────────────────────────────────────────────────

@dataclass
class CertificateAuth:
    """Certificate-based app-only authentication configuration."""
    tenant_id: str
    client_id: str
    certificate_path: str          # Path to base64-encoded PFX
    certificate_password: str = "" # Will be prompted if empty

@dataclass
class DelegatedAuth:
    """Delegated (interactive) authentication configuration."""
    tenant_id: str
    client_id: str
    admin_upn: str = ""            # Operator identity, used for mailbox routing

@dataclass
class AuthConfig:
    """Authentication configuration — supports both modes."""
    mode: str = "certificate"  # "certificate" or "delegated"
    certificate: Optional[CertificateAuth] = None
    delegated: Optional[DelegatedAuth] = None


# ─── Admin API Settings ─────────────────────────────────────────────────────

EXCHANGE_ADMIN_URL = "https://outlook.office365.com/adminapi/beta"
COMPLIANCE_ADMIN_URL = "https://ps.compliance.protection.outlook.com/adminapi/beta"

EXCHANGE_SCOPE = "https://outlook.office365.com/.default"
COMPLIANCE_SCOPE = "https://ps.compliance.protection.outlook.com/.default"

# Throttling
MAX_RETRIES = 5                   # Retry count for throttled requests
INITIAL_BACKOFF_SECONDS = 2.0     # First retry delay
MAX_BACKOFF_SECONDS = 60.0        # Cap on exponential backoff
BACKOFF_MULTIPLIER = 2.0          # Exponential factor

# Pagination
MAX_PAGES_PER_CMDLET = 10000      # Safety cap on nextLink loops

# Wait after creating a compliance search before starting it
DEFAULT_SETTLE_SECONDS = 5.0
MIN_SETTLE_SECONDS = 1.0          # Lower values are raised to this


# ─── Exchange Settings ──────────────────────────────────────────────────────

@dataclass
class ExchangeConfig:
    """Controls for remote administration behaviour."""
    organization: str = ""                 # e.g. contoso.onmicrosoft.com
    exchange_url: str = EXCHANGE_ADMIN_URL
    compliance_url: str = COMPLIANCE_ADMIN_URL
    settle_seconds: float = DEFAULT_SETTLE_SECONDS
    read_only: bool = False                # Block every mutating cmdlet
    request_timeout: float = 120.0


# ─── Output Configuration ───────────────────────────────────────────────────

@dataclass
class OutputConfig:
    """Output directory settings."""
    base_dir: str = ""
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        if not self.base_dir:
            self.base_dir = os.path.join(os.getcwd(), "m365_admin_output")

    @property
    def session_dir(self) -> Path:
        return Path(self.base_dir)

    @property
    def audit_dir(self) -> Path:
        return self.session_dir / "audit"


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass
class ConsoleConfig:
    """Top-level configuration for both consoles."""
    auth: AuthConfig = field(default_factory=AuthConfig)
    exchange: ExchangeConfig = field(default_factory=ExchangeConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    verbose: bool = False

    @classmethod
    def from_file(cls, path: str) -> "ConsoleConfig":
        """Load configuration from a JSON file."""
        with open(path, "r") as f:
            data = json.load(f)
        config = cls()
        if "auth" in data:
            auth_data = data["auth"]
            config.auth.mode = auth_data.get("mode", "certificate")
            if "certificate" in auth_data:
                c = auth_data["certificate"]
                config.auth.certificate = CertificateAuth(
                    tenant_id=c["tenant_id"],
                    client_id=c["client_id"],
                    certificate_path=c.get("certificate_path", "./base64.txt"),
                    certificate_password=c.get("certificate_password", ""),
                )
            if "delegated" in auth_data:
                d = auth_data["delegated"]
                config.auth.delegated = DelegatedAuth(
                    tenant_id=d["tenant_id"],
                    client_id=d["client_id"],
                    admin_upn=d.get("admin_upn", ""),
                )
        if "exchange" in data:
            for k, v in data["exchange"].items():
                if hasattr(config.exchange, k):
                    setattr(config.exchange, k, v)
            config.exchange.settle_seconds = max(MIN_SETTLE_SECONDS, float(config.exchange.settle_seconds))
        if "output" in data:
            for k, v in data["output"].items():
                if hasattr(config.output, k):
                    setattr(config.output, k, v)
        config.verbose = data.get("verbose", False)
        return config


# ─── Required Application Roles ─────────────────────────────────────────────

REQUIRED_PERMISSIONS = {
    "Exchange.ManageAsApp": "Run Exchange Online cmdlets app-only",
    "Exchange Administrator (directory role)": "Read and change mailbox folder permissions",
    "Compliance Administrator (directory role)": "Create, start and export compliance searches",
    "eDiscovery Manager (role group)": "Export compliance search results",
}
