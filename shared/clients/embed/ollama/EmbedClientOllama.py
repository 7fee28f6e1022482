import math

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientOllama(EmbedClientInterface):
    """Embedding provider backed by Ollama's /api/embed.

    Over-long inputs are rejected by the server instead of being cut, so a chunk
    that does not fit the model's context fails (and is skipped by ingestion)
    rather than being indexed with a vector for only part of its text.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._keep_alive = self.get_config_val("KEEP_ALIVE", default="", val_type="string")
        self._truncate = self.get_config_val("TRUNCATE", default=False, val_type="bool")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Ollama"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="KEEP_ALIVE", val_type="string", default=""),
            EnvConfig(env_key="TRUNCATE", val_type="bool", default=False),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/api/version"

    def get_endpoint_embedding(self) -> str:
        return "/api/embed"

    def get_endpoint_model_details(self) -> str:
        return "/api/show"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        payload = {"model": self.embed_model, "input": texts, "truncate": self._truncate}
        if self._keep_alive:
            # keeps the model loaded between ingestion batches
            payload["keep_alive"] = self._keep_alive
        return payload

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_vector_size_from_model_info(self, model_info: dict) -> int:
        """Read "<arch>.embedding_length" from an /api/show response.

        Raises:
            ValueError: If no architecture reports an embedding length.
        """
        lengths = [
            value for key, value in (model_info.get("model_info") or {}).items()
            if key.endswith(".embedding_length")
        ]
        if not lengths:
            raise ValueError(f"Model '{self.embed_model}' does not report an embedding length.")
        return int(lengths[0])

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Turn an /api/embed response into float vectors, one per input.

        Raises:
            ValueError: If a vector is missing, empty or contains non-finite values.
        """
        embeddings = response_data.get("embeddings")
        if not isinstance(embeddings, list) or not embeddings:
            raise ValueError(f"Ollama returned no embeddings (keys: {sorted(response_data)}).")

        vectors: list[list[float]] = []
        for position, raw in enumerate(embeddings):
            if not raw:
                raise ValueError(f"Ollama returned an empty vector at position {position}.")
            vector = [float(v) for v in raw]
            if not all(math.isfinite(v) for v in vector):
                raise ValueError(f"Ollama returned a non-finite vector at position {position}.")
            vectors.append(vector)
        return vectors
