"""
Cmdlet Guardian — Gatekeeper for every remote administrative call.
Validates cmdlet names against an allow-list, blocks writes in read-only
mode, and keeps an audit trail of every tenant modification.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("m365_admin_console.safety")

# ─── Allowed Cmdlets ─────────────────────────────────────────────────────────

READ_CMDLETS = {
    "Get-Mailbox",
    "Get-MailboxFolderPermission",
    "Get-MailboxFolderStatistics",
    "Get-ComplianceSearch",
    "Get-ComplianceSearchAction",
}

WRITE_CMDLETS = {
    "Add-MailboxFolderPermission",
    "Set-MailboxFolderPermission",
    "Remove-MailboxFolderPermission",
    "New-ComplianceSearch",
    "Start-ComplianceSearch",
    "New-ComplianceSearchAction",
}

# Parameters whose values never belong in an audit file
REDACTED_PARAMETERS = {"Password", "CertificatePassword"}


class CmdletViolation(Exception):
    """Raised when a cmdlet is not allowed to run."""
    pass


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class CmdletGuardian:
    """
    Validates every outbound cmdlet invocation.
    Maintains an audit log of all mutating calls and blocked attempts.
    """

    def __init__(self, read_only: bool = False):
        self.read_only = read_only
        self.violations: list[dict] = []
        self.changes: list[dict] = []
        self.checks_performed: int = 0
        self.started_at: str = _utc_now()

    @staticmethod
    def is_mutating(cmdlet: str) -> bool:
        return cmdlet in WRITE_CMDLETS

    def validate_invocation(self, cmdlet: str, parameters: Optional[dict] = None) -> bool:
        """
        Validate that a cmdlet may be invoked.
        Returns True if allowed, raises CmdletViolation if not.
        Mutating cmdlets are recorded in the change log.
        """
        self.checks_performed += 1

        if cmdlet in READ_CMDLETS:
            return True

        if cmdlet not in WRITE_CMDLETS:
            self._record_violation(cmdlet, parameters, "Cmdlet not on allow-list")
            raise CmdletViolation(f"Cmdlet not allowed: {cmdlet}")

        if self.read_only:
            self._record_violation(cmdlet, parameters, "Write blocked in read-only mode")
            raise CmdletViolation(f"Read-only mode: {cmdlet} was blocked")

        self.changes.append({
            "timestamp": _utc_now(),
            "cmdlet": cmdlet,
            "parameters": self._redact(parameters),
        })
        logger.info(f"Mutating cmdlet approved: {cmdlet}")
        return True

    def _record_violation(self, cmdlet: str, parameters: Optional[dict], reason: str):
        violation = {
            "timestamp": _utc_now(),
            "cmdlet": cmdlet,
            "parameters": self._redact(parameters),
            "reason": reason,
        }
        self.violations.append(violation)
        logger.warning(f"Cmdlet blocked: {reason} — {cmdlet}")

    @staticmethod
    def _redact(parameters: Optional[dict]) -> dict:
        return {
            k: ("***" if k in REDACTED_PARAMETERS else v)
            for k, v in (parameters or {}).items()
        }

    def get_audit_record(self) -> dict:
        """Return the full audit record for this session."""
        return {
            "cmdlet_guardian": {
                "mode": "READ-ONLY" if self.read_only else "READ-WRITE",
                "started_at": self.started_at,
                "checks_performed": self.checks_performed,
                "changes_made": len(self.changes),
                "changes": self.changes,
                "violations_detected": len(self.violations),
                "violations": self.violations,
            }
        }

    def print_banner(self, title: str):
        """Print the session warning banner."""
        print("=" * 75)
        print(f"  {title}")
        if self.read_only:
            print("  READ-ONLY MODE -- every tenant modification will be blocked")
        else:
            print("  CHANGES ARE APPLIED TO THE LIVE TENANT AFTER CONFIRMATION")
            print("  * Every mutating call is recorded in the session audit log")
            print("  * Permission changes are verified by reading them back")
        print("=" * 75)
