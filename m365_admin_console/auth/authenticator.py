"""
Authentication module — Supports certificate-based and delegated interactive auth.
Uses MSAL for token acquisition against Microsoft Identity Platform. One
token is issued per admin resource (Exchange Online, Security & Compliance).
"""

from __future__ import annotations

import base64
import getpass
import logging
import os
from typing import Optional

from cryptography.hazmat.primitives.serialization import pkcs12, Encoding, PrivateFormat, NoEncryption
from cryptography.hazmat.primitives.hashes import SHA1
import msal

from ..config import AuthConfig, REQUIRED_PERMISSIONS
from ..exchange.client import APP_ANCHOR_MAILBOX

logger = logging.getLogger("m365_admin_console.auth")

AUTHORITY = "https://login.microsoftonline.com/{tenant_id}"


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


class Authenticator:
    """
    Handles MSAL-based authentication for the admin APIs.
    Supports:
      - Certificate-based app-only authentication
      - Delegated interactive authentication (device code flow)
    """

    def __init__(self, config: AuthConfig):
        self.config = config
        self._confidential_app: Optional[msal.ConfidentialClientApplication] = None
        self._public_app: Optional[msal.PublicClientApplication] = None
        self._tokens: dict[str, str] = {}

    @property
    def tenant_id(self) -> str:
        if self.config.mode == "certificate" and self.config.certificate:
            return self.config.certificate.tenant_id
        if self.config.mode == "delegated" and self.config.delegated:
            return self.config.delegated.tenant_id
        raise AuthenticationError(f"No {self.config.mode} auth config provided.")

    async def acquire_token(self, scope: str) -> str:
        """Acquire an access token for one resource scope."""
        if scope in self._tokens:
            return self._tokens[scope]
        if self.config.mode == "certificate":
            token = self._acquire_certificate_token(scope)
        elif self.config.mode == "delegated":
            token = self._acquire_delegated_token(scope)
        else:
            raise AuthenticationError(f"Unknown auth mode: {self.config.mode}")
        self._tokens[scope] = token
        return token

    def _certificate_app(self) -> msal.ConfidentialClientApplication:
        """Load the PFX once and build the confidential client."""
        if self._confidential_app:
            return self._confidential_app

        cert_config = self.config.certificate
        if not cert_config:
            raise AuthenticationError("Certificate auth config not provided.")

        logger.info("Authenticating with certificate-based app credentials...")

        cert_path = cert_config.certificate_path
        password = cert_config.certificate_password
        if not password:
            password = os.environ.get("M365_CERT_PASSWORD", "")
        if not password:
            password = getpass.getpass("Enter the certificate password: ")

        try:
            with open(cert_path, "r") as f:
                cert_base64 = f.read().strip()

            cert_bytes = base64.b64decode(cert_base64)
            password_bytes = password.encode("utf-8") if password else None

            private_key, certificate, _ = pkcs12.load_key_and_certificates(
                cert_bytes, password_bytes
            )

            private_key_pem = private_key.private_bytes(
                Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
            ).decode("utf-8")

            thumbprint = certificate.fingerprint(SHA1()).hex()
            logger.info(f"Certificate loaded. Thumbprint: {thumbprint}")

        except FileNotFoundError:
            raise AuthenticationError(
                f"Certificate file not found: {cert_path}. "
                "Pass --cert-path or set cert_path on the profile."
            )
        except Exception as e:
            raise AuthenticationError(f"Failed to load certificate: {e}")

        self._confidential_app = msal.ConfidentialClientApplication(
            client_id=cert_config.client_id,
            authority=AUTHORITY.format(tenant_id=cert_config.tenant_id),
            client_credential={
                "thumbprint": thumbprint,
                "private_key": private_key_pem,
            },
        )
        return self._confidential_app

    def _acquire_certificate_token(self, scope: str) -> str:
        result = self._certificate_app().acquire_token_for_client(scopes=[scope])
        if "access_token" in result:
            logger.info(f"Certificate authentication successful for {scope}.")
            return result["access_token"]
        error = result.get("error_description", result.get("error", "Unknown"))
        raise AuthenticationError(f"Certificate auth failed: {error}")

    def _acquire_delegated_token(self, scope: str) -> str:
        """Acquire token using delegated (device code) flow; reuse the account silently."""
        deleg_config = self.config.delegated
        if not deleg_config:
            raise AuthenticationError("Delegated auth config not provided.")

        if not self._public_app:
            self._public_app = msal.PublicClientApplication(
                client_id=deleg_config.client_id,
                authority=AUTHORITY.format(tenant_id=deleg_config.tenant_id),
            )
        app = self._public_app

        accounts = app.get_accounts(username=deleg_config.admin_upn or None)
        if accounts:
            result = app.acquire_token_silent([scope], account=accounts[0])
            if result and "access_token" in result:
                return result["access_token"]

        logger.info("Initiating device code authentication flow...")
        flow = app.initiate_device_flow(scopes=[scope])
        if "user_code" not in flow:
            raise AuthenticationError(
                f"Device code flow failed: {flow.get('error_description', 'Unknown')}"
            )

        print(f"\n{'='*60}")
        print(f"  To sign in, open: {flow['verification_uri']}")
        print(f"  Enter code: {flow['user_code']}")
        if deleg_config.admin_upn:
            print(f"  Sign in as: {deleg_config.admin_upn}")
        print(f"{'='*60}\n")

        result = app.acquire_token_by_device_flow(flow)

        if "access_token" in result:
            logger.info("Delegated authentication successful.")
            return result["access_token"]
        error = result.get("error_description", result.get("error", "Unknown"))
        raise AuthenticationError(f"Delegated auth failed: {error}")

    def anchor_mailbox(self, organization: str) -> str:
        """Routing hint header value for the admin endpoints."""
        if self.config.mode == "delegated" and self.config.delegated and self.config.delegated.admin_upn:
            return f"UPN:{self.config.delegated.admin_upn}"
        return f"{APP_ANCHOR_MAILBOX}{organization}" if organization else ""

    @staticmethod
    def list_required_permissions() -> dict[str, str]:
        """Return the map of required application roles."""
        return REQUIRED_PERMISSIONS
