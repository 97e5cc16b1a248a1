"""
OAuth providers.

Each provider knows how to build its authorization URL and how to turn the
callback `code` into a normalized ProviderProfile. The registry is built once
in create_app() and lives on app.state, so tests can swap in their own.

GitHub is the only real provider. With a client id starting with "MOCK_" it
runs without network access: the authorization URL points straight back at our
callback and authenticate() returns a fixed profile.
"""
import logging
from typing import Iterable, Optional
from urllib.parse import urlencode

import httpx
from fastapi import Request

from epic_notes.config import Settings
from epic_notes.core.exceptions import ProviderAuthError, UnknownProviderException
from epic_notes.schemas.cookies import ProviderProfile

logger = logging.getLogger(__name__)


class OAuthProvider:
    name: str = ""
    label: str = ""

    def authorization_url(self, state: str, redirect_uri: str) -> str:
        raise NotImplementedError

    async def authenticate(self, code: str, redirect_uri: str) -> ProviderProfile:
        raise NotImplementedError


# =============================================================================
# GitHub
# =============================================================================

class GitHubProvider(OAuthProvider):
    name = "github"
    label = "GitHub"

    AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
    TOKEN_URL = "https://github.com/login/oauth/access_token"
    USER_URL = "https://api.github.com/user"
    EMAILS_URL = "https://api.github.com/user/emails"

    MOCK_CODE = "MOCK_CODE_GITHUB"
    MOCK_PROFILE = ProviderProfile(
        id="MOCK_GITHUB_USER_ID",
        email="kody@example.com",
        username="kody",
        name="Kody",
        image_url=None,
    )

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.transport = transport

    @property
    def is_mock(self) -> bool:
        return self.client_id.startswith("MOCK_")

    def authorization_url(self, state: str, redirect_uri: str) -> str:
        if self.is_mock:
            return f"{redirect_uri}?{urlencode({'code': self.MOCK_CODE, 'state': state})}"
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": "read:user user:email",
            "state": state,
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    async def authenticate(self, code: str, redirect_uri: str) -> ProviderProfile:
        if self.is_mock:
            return self.MOCK_PROFILE

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
                access_token = await self._exchange_code(client, code, redirect_uri)
                headers = {
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                }
                user_response = await client.get(self.USER_URL, headers=headers)
                if user_response.status_code != 200:
                    raise ProviderAuthError(
                        f"GitHub user lookup returned {user_response.status_code}", self.name
                    )
                user_data = user_response.json()

                # The profile email is empty when the user keeps it private
                email = user_data.get("email")
                if not email:
                    email = await self._primary_email(client, headers)

            if not email:
                raise ProviderAuthError("No email found in GitHub profile", self.name)

            return ProviderProfile(
                id=str(user_data["id"]),
                email=email.lower(),
                username=user_data.get("login"),
                name=user_data.get("name"),
                image_url=user_data.get("avatar_url"),
            )
        except httpx.HTTPError as exc:
            raise ProviderAuthError(f"GitHub request failed: {exc!r}", self.name) from exc
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            # Non-JSON body or a payload without the fields we read
            raise ProviderAuthError(f"Unexpected GitHub response: {exc!r}", self.name) from exc

    async def _exchange_code(self, client: httpx.AsyncClient, code: str, redirect_uri: str) -> str:
        response = await client.post(
            self.TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
            },
            headers={"Accept": "application/json"},
        )
        payload = response.json() if response.status_code == 200 else {}
        access_token = payload.get("access_token")
        if not access_token:
            # GitHub answers 200 with {"error": ...} for a bad or reused code
            raise ProviderAuthError(
                f"GitHub code exchange failed: {payload.get('error') or response.status_code}",
                self.name,
            )
        return access_token

    async def _primary_email(self, client: httpx.AsyncClient, headers: dict) -> Optional[str]:
        response = await client.get(self.EMAILS_URL, headers=headers)
        if response.status_code != 200:
            return None
        for email_data in response.json():
            if email_data.get("primary") and email_data.get("verified", True):
                return email_data["email"]
        return None


# =============================================================================
# Registry
# =============================================================================

class ProviderRegistry:
    def __init__(self, providers: Iterable[OAuthProvider] = ()):
        self._providers = {provider.name: provider for provider in providers}

    def __contains__(self, name: str) -> bool:
        return name in self._providers

    def names(self) -> list[str]:
        return list(self._providers)

    def register(self, provider: OAuthProvider) -> None:
        self._providers[provider.name] = provider

    def get(self, name: str) -> OAuthProvider:
        try:
            return self._providers[name]
        except KeyError:
            raise UnknownProviderException(name)


def build_provider_registry(settings: Settings) -> ProviderRegistry:
    registry = ProviderRegistry(
        [GitHubProvider(settings.github_client_id, settings.github_client_secret)]
    )
    logger.info(f"OAuth providers: {', '.join(registry.names())}")
    return registry


def get_providers(request: Request) -> ProviderRegistry:
    """FastAPI dependency: the registry create_app() put on app.state."""
    return request.app.state.providers
