"""
Corti v2 REST client.

- One instance per process, shared by all sessions (stateless apart from
  the token cache and the HTTP connection pool)
- Authenticated with a client-credentials bearer token plus Tenant-Name
- Provider failures raise ProviderHTTPError(status_code, detail);
  transport failures and undecodable bodies have status_code None
- Response bodies are returned verbatim (decoded JSON)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from adapters.corti.auth import ClientCredentialsAuth
from adapters.corti.errors import ProviderHTTPError
from adapters.corti.streaming import CortiStreamAdapter, EmitEvent, build_stream_url
from constants import CORTI_API_URL_TEMPLATE, HTTP_TIMEOUT_S

if TYPE_CHECKING:
    from config import AppConfig


def _error_detail(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class CortiClient:
    """Interactions, templates, documents and stream connect for one tenant."""

    def __init__(
        self,
        *,
        http: httpx.AsyncClient,
        auth: ClientCredentialsAuth,
        tenant_name: str,
        environment: str,
    ) -> None:
        self._http = http
        self._auth = auth
        self._tenant_name = tenant_name
        self._environment = environment
        self._base_url = CORTI_API_URL_TEMPLATE.format(environment=environment)

    @classmethod
    def from_config(cls, config: AppConfig) -> CortiClient:
        """
        Build the process-wide client from validated configuration.

        Caller guarantees config.missing_provider_vars() is empty.
        """
        assert config.client_id and config.client_secret
        assert config.tenant_name and config.environment

        http = httpx.AsyncClient(timeout=HTTP_TIMEOUT_S)
        auth = ClientCredentialsAuth(
            http=http,
            client_id=config.client_id,
            client_secret=config.client_secret,
            tenant_name=config.tenant_name,
            environment=config.environment,
        )
        return cls(
            http=http,
            auth=auth,
            tenant_name=config.tenant_name,
            environment=config.environment,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        token = await self._auth.get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Tenant-Name": self._tenant_name,
        }

        try:
            resp = await self._http.request(
                method,
                f"{self._base_url}{path}",
                headers=headers,
                json=json_body,
            )
        except httpx.HTTPError as e:
            raise ProviderHTTPError(None, str(e) or type(e).__name__) from e

        if resp.status_code == 401:
            self._auth.invalidate()

        if resp.is_error:
            raise ProviderHTTPError(resp.status_code, _error_detail(resp))

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderHTTPError(None, f"response is not JSON: {resp.text[:200]}") from e

    # ------------------------------------------------------------------
    # Interactions
    # ------------------------------------------------------------------

    async def create_interaction(self, encounter: dict[str, Any]) -> str:
        """Create an interaction and return its id."""
        body = await self._request("POST", "/interactions/", json_body={"encounter": encounter})
        interaction_id = body.get("interactionId") if isinstance(body, dict) else None
        if not interaction_id:
            raise ProviderHTTPError(None, "interaction response has no interactionId")
        return str(interaction_id)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    async def list_templates(self) -> Any:
        return await self._request("GET", "/templates/")

    async def get_template(self, key: str) -> Any:
        return await self._request("GET", f"/templates/{key}")

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def list_documents(self, interaction_id: str) -> Any:
        return await self._request("GET", f"/interactions/{interaction_id}/documents/")

    async def create_document(self, interaction_id: str, request: dict[str, Any]) -> Any:
        return await self._request(
            "POST", f"/interactions/{interaction_id}/documents/", json_body=request
        )

    async def get_document(self, interaction_id: str, document_id: str) -> Any:
        return await self._request(
            "GET", f"/interactions/{interaction_id}/documents/{document_id}"
        )

    async def delete_document(self, interaction_id: str, document_id: str) -> None:
        await self._request(
            "DELETE", f"/interactions/{interaction_id}/documents/{document_id}"
        )

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    async def open_stream(
        self,
        interaction_id: str,
        configuration: dict[str, Any],
        *,
        emit_event: EmitEvent,
        session_id: str | None = None,
    ) -> CortiStreamAdapter:
        """
        Connect to the interaction's stream and send the configuration.

        Receiving does not start until the caller calls start_receiving().

        Raises:
            ProviderAuthError, ProviderConnectError
        """
        token = await self._auth.get_token()
        stream = CortiStreamAdapter(
            url=build_stream_url(
                environment=self._environment,
                tenant_name=self._tenant_name,
                interaction_id=interaction_id,
                token=token,
            ),
            configuration=configuration,
            emit_event=emit_event,
            session_id=session_id,
        )
        await stream.connect()
        return stream
