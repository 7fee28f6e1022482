from abc import ABC, abstractmethod
from typing import Any

import httpx
from httpx._types import QueryParamTypes, RequestContent

from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import ClientRequestError

# how much of an error body ends up in logs and exceptions
_ERROR_BODY_PREVIEW = 200


class ClientInterface(ABC):
    """Base class for every backend the pipeline talks to over HTTP.

    A client belongs to one family ("embed", "rag", "llm") and one engine
    ("ollama", "qdrant", ...). Engine settings are read from
    ``{FAMILY}_{ENGINE}_{KEY}`` env vars, family-wide settings from
    ``{FAMILY}_{KEY}``. The httpx client only exists between boot() and close().
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self.timeout = helper_config.get_number_val(self._family_key("TIMEOUT"), default=30.0)
        self._client: httpx.AsyncClient | None = None
        self.validate_full_configuration()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_full_configuration(self) -> None:
        """Fail fast on missing engine settings.

        Raises:
            ValueError: If a required key has no value and no default.
        """
        for config in self._get_required_config():
            self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)

    def is_booted(self) -> bool:
        return self._client is not None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def get_client_type(self) -> str:
        """Family of the client in lowercase, e.g. "embed"."""
        return self._get_client_type().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        pass

    def get_engine_name(self) -> str:
        """Engine of the client in lowercase, e.g. "qdrant"."""
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        pass

    ################ CONFIG ##################
    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        """Engine-specific settings checked on construction."""
        pass

    def _family_key(self, raw_key: str) -> str:
        return f"{self.get_client_type().upper()}_{raw_key.upper()}"

    def _get_config_key_name(self, raw_key: str) -> str:
        """e.g. "URL" on the qdrant index client becomes "RAG_QDRANT_URL"."""
        return self._family_key(f"{self.get_engine_name()}_{raw_key}")

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """Read an engine-specific setting.

        Args:
            raw_key (str): Key without the family/engine prefix.
            default (Any): Value used when the variable is unset.
            val_type (str): One of "string", "number", "bool", "list".

        Raises:
            ValueError: If the key is missing without default or val_type is unknown.
        """
        readers = {
            "string": self._helper_config.get_string_val,
            "number": self._helper_config.get_number_val,
            "bool": self._helper_config.get_bool_val,
            "list": self._helper_config.get_list_val,
        }
        reader = readers.get(val_type)
        if reader is None:
            raise ValueError(
                f"Unsupported value type '{val_type}' for '{raw_key}' of {self.get_client_type()} engine '{self.get_engine_name()}'."
            )
        return reader(self._get_config_key_name(raw_key), default=default)

    ################ AUTH ##################
    @abstractmethod
    def _get_auth_header(self) -> dict:
        """Headers that authenticate against the backend, empty when no key is configured."""
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_base_url(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_healthcheck(self) -> str:
        pass

    def _build_url(self, endpoint: str) -> str:
        path = endpoint.strip().lstrip("/")
        base = self._get_base_url().rstrip("/")
        return f"{base}/{path}" if path else base

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self) -> httpx.Response:
        """Ping the backend.

        Raises:
            ClientRequestError: If the backend answers with a non-2xx status.
        """
        response = await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck(), raise_on_error=True)
        self.logging.info("%s backend '%s' is reachable.", self.get_client_type(), self.get_engine_name())
        return response

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self) -> None:
        self._client = httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def do_request(
        self,
        method: str = "GET",
        endpoint: str = "",
        json: dict | None = None,
        content: RequestContent | None = None,
        params: QueryParamTypes | None = None,
        additional_headers: dict | None = None,
        raise_on_error: bool = False,
    ) -> httpx.Response:
        """Send one request to the backend.

        Args:
            method: HTTP verb.
            endpoint: Path below the base URL, leading slash optional.
            json: JSON body. Ignored when content is given.
            content: Pre-encoded body, e.g. a large upsert serialized once.
            params: Query parameters.
            additional_headers: Headers merged over the auth header.
            raise_on_error: Turn a non-2xx status into ClientRequestError.

        Raises:
            RuntimeError: If boot() has not been called.
            ClientRequestError: On a non-2xx status when raise_on_error is set.
            httpx.TimeoutException, httpx.TransportError: On network failures.
        """
        if self._client is None:
            raise RuntimeError(f"{self.get_client_type()} client '{self.get_engine_name()}' is not booted.")

        url = self._build_url(endpoint)
        headers = {**self._get_auth_header(), **(additional_headers or {})}
        body: dict = {"content": content} if content is not None else {"json": json} if json is not None else {}

        response = await self._client.request(method, url, headers=headers, params=params, timeout=self.timeout, **body)

        if raise_on_error and not response.is_success:
            preview = response.text[:_ERROR_BODY_PREVIEW]
            self.logging.error("%s %s failed with status %d: %s", method, url, response.status_code, preview)
            raise ClientRequestError(response.status_code, url, preview)
        return response
