"""Client for the Monnify disbursement API.

Every transfer authenticates afresh: the bearer token is fetched per call and
never cached. No retries happen here; callers decide what a failure means.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

import httpx

from payrun.core.errors import GatewayError
from payrun.core.logging import get_logger

logger = get_logger(__name__)

AUTH_PATH = "/api/v1/auth/login"
SINGLE_TRANSFER_PATH = "/api/v2/disbursements/single"


@dataclass(frozen=True)
class TransferResult:
    reference: str
    status: str


class MonnifyClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        secret_key: str,
        source_account_number: str,
        currency: str = "NGN",
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.source_account_number = source_account_number
        self.currency = currency
        self._api_key = api_key
        self._secret_key = secret_key
        self._http = http_client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    @classmethod
    def from_settings(cls, settings) -> MonnifyClient:
        return cls(
            base_url=settings.monnify_base_url,
            api_key=settings.monnify_api_key,
            secret_key=settings.monnify_secret_key,
            source_account_number=settings.monnify_wallet_account_number,
            currency=settings.gateway_currency,
            timeout=settings.gateway_timeout_seconds,
        )

    def close(self) -> None:
        self._http.close()

    def _basic_credentials(self) -> str:
        raw = f"{self._api_key}:{self._secret_key}".encode("utf-8")
        return base64.b64encode(raw).decode("ascii")

    def _call(self, path: str, headers: dict[str, str], payload: Optional[dict] = None) -> dict[str, Any]:
        try:
            response = self._http.post(path, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise GatewayError(f"request to {path} failed: {exc}") from exc

        try:
            envelope = response.json()
        except ValueError as exc:
            raise GatewayError(f"malformed response from {path} (HTTP {response.status_code})") from exc

        if not isinstance(envelope, dict):
            raise GatewayError(f"malformed response from {path} (HTTP {response.status_code})")
        if response.is_error or not envelope.get("requestSuccessful"):
            message = envelope.get("responseMessage") or f"HTTP {response.status_code}"
            raise GatewayError(message)

        body = envelope.get("responseBody")
        if not isinstance(body, dict):
            raise GatewayError(f"no response body from {path}")
        return body

    def get_access_token(self) -> str:
        body = self._call(AUTH_PATH, headers={"Authorization": f"Basic {self._basic_credentials()}"})
        token = body.get("accessToken")
        if not token:
            raise GatewayError("No access token in response")
        return token

    def send_transfer(
        self,
        *,
        amount: Decimal,
        reference: str,
        narration: str,
        bank_code: str,
        account_number: str,
        account_name: str,
    ) -> TransferResult:
        token = self.get_access_token()
        payload = {
            "amount": float(amount),
            "reference": reference,
            "narration": narration,
            "destinationBankCode": bank_code,
            "destinationAccountNumber": account_number,
            "destinationAccountName": account_name,
            "currency": self.currency,
            "sourceAccountNumber": self.source_account_number,
            "async": False,
        }
        body = self._call(SINGLE_TRANSFER_PATH, headers={"Authorization": f"Bearer {token}"}, payload=payload)

        try:
            result = TransferResult(reference=str(body["reference"]), status=str(body["status"]))
        except KeyError as exc:
            raise GatewayError(f"transfer response missing {exc.args[0]}") from exc

        logger.info("gateway_transfer_sent", reference=result.reference, status=result.status)
        return result
