"""
Wallet Provisioning

IntaSend client and the provisioner that gives each new tenant a wallet.

Notes:
- Uses requests with a short timeout; no retries
- Test mode (sandbox host) everywhere except production
- Outside production, a failed call can fall back to a placeholder wallet id
  flagged for later reconciliation (see Settings.PLACEHOLDER_WALLET_ENVIRONMENTS)
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging
import uuid

import requests

from zyrapay.config import Settings
from zyrapay.core.exceptions import WalletProviderError, WalletProvisioningError

logger = logging.getLogger(__name__)

LIVE_URL = "https://payment.intasend.com/api"
SANDBOX_URL = "https://sandbox.intasend.com/api"
DEFAULT_TIMEOUT = 10


class IntaSendClient:
    """Minimal IntaSend wallets API client."""

    def __init__(
        self,
        secret_key: str,
        publishable_key: str,
        test: bool = True,
        base_url: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.secret_key = secret_key or ""
        self.publishable_key = publishable_key or ""
        self.test = test
        self.base_url = (base_url or (SANDBOX_URL if test else LIVE_URL)).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "IntaSendClient":
        test = settings.wallet_sandbox
        return cls(
            secret_key=settings.INTASEND_SECRET_KEY,
            publishable_key=settings.INTASEND_PUBLIC_KEY,
            test=test,
            base_url=settings.INTASEND_SANDBOX_URL if test else settings.INTASEND_LIVE_URL,
            timeout=settings.INTASEND_TIMEOUT,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.secret_key:
            headers["Authorization"] = f"Bearer {self.secret_key}"
        return headers

    def _url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    def create_wallet(self, currency: str, label: str, can_disburse: bool = True) -> Dict[str, Any]:
        """
        Create a working-capital wallet.

        Returns the provider's wallet payload. Raises WalletProviderError on
        transport errors, non-2xx responses and payloads without a wallet_id.
        """
        payload = {
            "wallet_type": "WORKING_CAPITAL",
            "currency": currency,
            "label": label,
            "can_disburse": can_disburse,
        }
        try:
            resp = self.session.post(
                self._url("/v1/wallets/"),
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise WalletProviderError(f"Wallet request failed: {e}") from e

        if resp.status_code >= 400:
            raise WalletProviderError(f"Wallet API returned {resp.status_code}: {resp.text[:200]}")

        try:
            data = resp.json()
        except ValueError as e:
            raise WalletProviderError("Wallet API returned a non-JSON body") from e

        if not isinstance(data, dict) or not data.get("wallet_id"):
            raise WalletProviderError("Wallet API response has no wallet_id")
        return data


@dataclass
class ProvisionedWallet:
    wallet_id: str
    is_placeholder: bool = False


class WalletProvisioner:
    """
    Creates the tenant wallet, falling back to a placeholder outside production.

    The provider is called exactly once per registration.
    """

    def __init__(self, client: IntaSendClient, settings: Settings):
        self.client = client
        self.settings = settings

    def provision(self, subdomain: str) -> ProvisionedWallet:
        wallet_id = None
        try:
            response = self.client.create_wallet(
                self.settings.WALLET_CURRENCY,
                subdomain,
                self.settings.WALLET_CAN_DISBURSE,
            )
            wallet_id = response.get("wallet_id")
        except Exception as e:
            logger.error(
                f"Failed to create IntaSend wallet for tenant: {e}",
                extra={"subdomain": subdomain}
            )

        if wallet_id:
            logger.info(f"Created wallet {wallet_id}", extra={"subdomain": subdomain, "wallet_id": wallet_id})
            return ProvisionedWallet(wallet_id=str(wallet_id))

        if self.settings.allows_placeholder_wallet:
            wallet_id = self.settings.PLACEHOLDER_WALLET_PREFIX + uuid.uuid4().hex[:13]
            logger.warning(
                "Using placeholder wallet ID for tenant",
                extra={"subdomain": subdomain, "wallet_id": wallet_id}
            )
            return ProvisionedWallet(wallet_id=wallet_id, is_placeholder=True)

        raise WalletProvisioningError()
