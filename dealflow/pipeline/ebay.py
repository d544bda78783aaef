"""
DealFlow — eBay API Client

OAuth 2.0 authorization-code grant (user tokens) and the Trading API
GetSellerTransactions call used by the sync pipeline.

Wire parsing lives in pipeline/trading_xml.py so callers only ever see a
typed TransactionsPage. Retries are the orchestrator's job; this client makes
exactly one request per call and raises typed errors.
"""

from __future__ import annotations

import base64
import hmac
import json
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog

from dealflow.config import EbayEnvironment, settings
from dealflow.errors import AuthExchangeError, RemoteApiError
from dealflow.pipeline.trading_xml import (
    build_get_seller_transactions_xml,
    parse_get_seller_transactions_response,
)
from dealflow.schemas import Tokens, TransactionsPage

logger = structlog.get_logger(__name__)

_REAUTH_ERRORS = frozenset({"invalid_grant", "invalid_token", "unauthorized_client"})


def generate_oauth_state() -> str:
    """Opaque CSRF state for the authorization redirect."""
    return secrets.token_urlsafe(32)


def validate_oauth_state(state: str | None, expected_state: str | None) -> bool:
    if not state or not expected_state:
        return False
    return hmac.compare_digest(state, expected_state)


def _error_code(body: str) -> str:
    try:
        data = json.loads(body)
    except ValueError:
        return ""
    if isinstance(data, dict):
        return str(data.get("error", ""))
    return ""


class EbayAPIClient:
    """
    Async client for eBay OAuth and the Trading API.

    Usage:
        async with EbayAPIClient() as client:
            url = client.generate_auth_url(state)
            tokens = await client.exchange_code_for_tokens(code)
            page = await client.fetch_transactions_page(
                tokens.access_token, start, end, page_number=1, page_size=200
            )
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        environment: EbayEnvironment | None = None,
        timeout: float | None = None,
    ) -> None:
        self._client_id = client_id or settings.EBAY_CLIENT_ID
        self._client_secret = client_secret or settings.EBAY_CLIENT_SECRET
        self._redirect_uri = redirect_uri or settings.EBAY_REDIRECT_URI
        self._environment = environment or settings.EBAY_ENVIRONMENT
        self._timeout = timeout or settings.EBAY_HTTP_TIMEOUT_SECONDS
        self._client: httpx.AsyncClient | None = None

        if self._environment == EbayEnvironment.SANDBOX:
            self.auth_base_url = "https://auth.sandbox.ebay.com"
            self.api_base_url = "https://api.sandbox.ebay.com"
        else:
            self.auth_base_url = "https://auth.ebay.com"
            self.api_base_url = "https://api.ebay.com"

    async def __aenter__(self) -> EbayAPIClient:
        self._client = httpx.AsyncClient(timeout=self._timeout)
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with'.")
        return self._client

    @property
    def token_url(self) -> str:
        return f"{self.api_base_url}/identity/v1/oauth2/token"

    @property
    def trading_url(self) -> str:
        return f"{self.api_base_url}/ws/api.dll"

    # -----------------------------------------------------------------------
    # OAuth
    # -----------------------------------------------------------------------

    def generate_auth_url(self, state: str) -> str:
        params = {
            "client_id": self._client_id,
            "response_type": "code",
            "redirect_uri": self._redirect_uri,
            "scope": settings.EBAY_OAUTH_SCOPES,
            "state": state,
        }
        return f"{self.auth_base_url}/oauth2/authorize?{urlencode(params)}"

    def _basic_auth_header(self) -> str:
        credentials = f"{self._client_id}:{self._client_secret}"
        return "Basic " + base64.b64encode(credentials.encode()).decode()

    async def _token_request(self, data: dict[str, str], action: str) -> dict[str, Any]:
        try:
            response = await self._http().post(
                self.token_url,
                headers={
                    "Authorization": self._basic_auth_header(),
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                data=data,
            )
        except httpx.RequestError as e:
            logger.error("ebay_token_request_error", action=action, error=str(e))
            raise AuthExchangeError(f"Token {action} failed: {e}") from e

        if not response.is_success:
            body = response.text
            error_code = _error_code(body)
            requires_reauth = error_code in _REAUTH_ERRORS
            logger.error(
                "ebay_token_request_failed",
                action=action,
                status_code=response.status_code,
                error_code=error_code,
                requires_reauth=requires_reauth,
            )
            raise AuthExchangeError(
                f"Token {action} failed: {body}",
                status_code=response.status_code,
                body=body,
                requires_reauth=requires_reauth,
            )

        return response.json()

    @staticmethod
    def _tokens_from(data: dict[str, Any], fallback_refresh: str = "") -> Tokens:
        expires_in = int(data.get("expires_in", 7200))
        return Tokens(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or fallback_refresh,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            token_type=data.get("token_type", "User Access Token"),
        )

    async def exchange_code_for_tokens(self, code: str) -> Tokens:
        data = await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._redirect_uri,
            },
            action="exchange",
        )
        tokens = self._tokens_from(data)
        logger.info("ebay_tokens_exchanged", expires_at=tokens.expires_at.isoformat())
        return tokens

    async def refresh_access_token(self, refresh_token: str) -> Tokens:
        data = await self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "scope": settings.EBAY_OAUTH_SCOPES,
            },
            action="refresh",
        )
        tokens = self._tokens_from(data, fallback_refresh=refresh_token)
        logger.info("ebay_token_refreshed", expires_at=tokens.expires_at.isoformat())
        return tokens

    async def validate_token(self, access_token: str) -> bool:
        """Identity probe. Network trouble counts as invalid rather than raising."""
        try:
            response = await self._http().get(
                f"{self.api_base_url}/commerce/identity/v1/user/",
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as e:
            logger.warning("ebay_token_validation_error", error=str(e))
            return False
        return response.is_success

    # -----------------------------------------------------------------------
    # Trading API
    # -----------------------------------------------------------------------

    async def fetch_transactions_page(
        self,
        access_token: str,
        from_date: datetime,
        to_date: datetime,
        page_number: int = 1,
        page_size: int | None = None,
    ) -> TransactionsPage:
        """
        Fetch one page of seller transactions modified in [from_date, to_date].

        Raises:
            RemoteApiError: Transport failure, non-2xx status, or an error
                envelope inside a 200 response.
        """
        entries = page_size or settings.SYNC_PAGE_SIZE
        body = build_get_seller_transactions_xml(
            mod_time_from=from_date,
            mod_time_to=to_date,
            page_number=page_number,
            entries_per_page=entries,
        )
        headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "X-EBAY-API-COMPATIBILITY-LEVEL": str(settings.EBAY_TRADING_COMPATIBILITY_LEVEL),
            "X-EBAY-API-CALL-NAME": "GetSellerTransactions",
            "X-EBAY-API-SITEID": str(settings.EBAY_TRADING_SITE_ID),
            "X-EBAY-API-IAF-TOKEN": access_token,
        }

        try:
            response = await self._http().post(
                self.trading_url, headers=headers, content=body.encode("utf-8")
            )
        except httpx.RequestError as e:
            logger.error("ebay_trading_request_error", page=page_number, error=str(e))
            raise RemoteApiError(f"eBay API request failed: {e}") from e

        if not response.is_success:
            logger.error(
                "ebay_trading_http_error",
                page=page_number,
                status_code=response.status_code,
            )
            raise RemoteApiError(
                f"eBay API request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        page = parse_get_seller_transactions_response(response.text)
        logger.info(
            "ebay_transactions_page_fetched",
            page=page_number,
            records=len(page.records),
            total_pages=page.total_pages,
            total_entries=page.total_entries,
        )
        return page
