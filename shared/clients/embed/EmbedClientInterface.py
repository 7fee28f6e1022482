from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import EmbeddingError


class EmbedClientInterface(ClientInterface):
    """Embedding provider: turns texts into fixed-dimension vectors.

    Settings: EMBED_MODEL (required), EMBED_BATCH_SIZE (texts per request,
    default 32) and EMBED_DIMENSION. Without a configured dimension it is
    resolved from the model on boot(), or fixed by the first vector returned.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.embed_model = helper_config.get_string_val(self._family_key("MODEL"))
        self.embed_batch_size = int(helper_config.get_number_val(self._family_key("BATCH_SIZE"), default=32))
        if self.embed_batch_size < 1:
            raise ValueError(f"{self._family_key('BATCH_SIZE')} must be at least 1.")

        configured_dim = int(helper_config.get_number_val(self._family_key("DIMENSION"), default=0))
        self._dimension: int | None = configured_dim if configured_dim > 0 else None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "embed"

    def get_dimension(self) -> int | None:
        """Vector length of this provider, None until it is known."""
        return self._dimension

    def get_config_fingerprint(self) -> tuple[tuple[str, str], ...]:
        """Sorted (name, value) pairs of every setting that changes the produced vectors.

        Cached query vectors are keyed on this, so switching model or engine
        never serves a vector from the old configuration.
        """
        return tuple(sorted({
            "base_url": self._get_base_url() or "",
            "dimension": str(self._dimension),
            "engine": self.get_engine_name(),
            "model": self.embed_model,
        }.items()))

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        pass

    @abstractmethod
    def get_endpoint_model_details(self) -> str:
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Request body embedding all texts in one call."""
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_vector_size_from_model_info(self, model_info: dict) -> int:
        """Vector length from the model details response.

        Raises:
            ValueError: If the response does not state it.
        """
        pass

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Vectors from an embedding response, in input order.

        Raises:
            ValueError: If the response is malformed.
        """
        pass

    def _check_vectors(self, vectors: list[list[float]], expected_count: int) -> list[list[float]]:
        """Reject a batch whose size or vector length is off.

        Raises:
            EmbeddingError: On a count or dimension mismatch.
        """
        if len(vectors) != expected_count:
            raise EmbeddingError(
                f"Embedding provider '{self.get_engine_name()}' returned {len(vectors)} vectors for {expected_count} texts."
            )
        if self._dimension is None and vectors:
            self._dimension = len(vectors[0])
            self.logging.info("Embedding dimension of model '%s' fixed to %d.", self.embed_model, self._dimension)
        for vector in vectors:
            if len(vector) != self._dimension:
                raise EmbeddingError(
                    f"Embedding provider '{self.get_engine_name()}' returned a vector of dimension {len(vector)}, expected {self._dimension}."
                )
        return vectors

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def boot(self) -> None:
        """Open the HTTP client and resolve the dimension if it is not configured.

        Raises:
            EmbeddingError: If the model details cannot be fetched or read.
        """
        await super().boot()
        if self._dimension is None:
            try:
                self._dimension = await self.do_fetch_embedding_vector_size()
            except Exception as exc:
                raise EmbeddingError(f"Could not determine embedding dimension for model '{self.embed_model}': {exc}", cause=exc) from exc
            self.logging.info("Embedding model '%s' produces %d-dimensional vectors.", self.embed_model, self._dimension)

    async def do_fetch_embedding_vector_size(self) -> int:
        """Ask the backend how long the vectors of the configured model are.

        Raises:
            ClientRequestError: If the backend answers with a non-2xx status.
            ValueError: If the response does not state the length.
        """
        response = await self.do_request(
            method="POST",
            endpoint=self.get_endpoint_model_details(),
            json={"name": self.embed_model},
            raise_on_error=True,
        )
        return self.extract_vector_size_from_model_info(model_info=response.json())

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """One raw embedding call, without validation of the result."""
        texts = [texts] if isinstance(texts, str) else texts
        response = await self.do_request(
            method="POST",
            endpoint=self.get_endpoint_embedding(),
            json=self.get_embed_payload(texts),
            raise_on_error=True,
        )
        return self.extract_embeddings_from_response(response.json())

    async def generate_batch_embeddings(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts with one backend call.

        No retries happen here; callers decide how to recover.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            list[list[float]]: One vector of the provider dimension per text, in input order.

        Raises:
            EmbeddingError: On transport, auth, quota or timeout failures, malformed
                responses, and vectors that do not match the provider dimension.
        """
        if not texts:
            return []
        try:
            vectors = await self.do_embed(texts)
        except EmbeddingError:
            raise
        except Exception as exc:
            self.logging.error("Embedding request to '%s' failed: %s", self.get_engine_name(), exc)
            raise EmbeddingError(f"Embedding request to '{self.get_engine_name()}' failed: {exc}", cause=exc) from exc
        return self._check_vectors(vectors, expected_count=len(texts))

    async def generate_embedding(self, text: str) -> list[float]:
        """Embed a single text.

        Raises:
            EmbeddingError: See generate_batch_embeddings().
        """
        vectors = await self.generate_batch_embeddings([text])
        return vectors[0]
