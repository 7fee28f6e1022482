from abc import abstractmethod
from typing import Any, Awaitable, Callable, TypeVar

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperRetry import do_with_retry
from shared.models.errors import DimensionMismatchError, VectorIndexError
from shared.models.vector import DistanceMetric, SearchResult, VectorRecord

T = TypeVar("T")


class RAGClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # index shape, fixed for the lifetime of the collection
        self.dimension = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_DIMENSION", default=768))
        self.distance = DistanceMetric.parse(
            helper_config.get_choice_val(
                f"{self.get_client_type().upper()}_DISTANCE",
                choices=[m.value for m in DistanceMetric],
                default=DistanceMetric.COSINE.value,
            )
        )
        if self.dimension < 1:
            raise ValueError(f"{self.get_client_type().upper()}_DIMENSION must be positive, got {self.dimension}.")

        # retry policy for transient backend failures
        self.retry_attempts = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_RETRY_ATTEMPTS", default=3))
        self.retry_base_delay = float(helper_config.get_number_val(f"{self.get_client_type().upper()}_RETRY_BASE_DELAY", default=0.5))

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_vector(self, vector: list[float], record_id: str | None = None) -> None:
        """
        Checks a vector against the index dimension.

        Raises:
            DimensionMismatchError: If the vector length differs from the index dimension.
        """
        if len(vector) != self.dimension:
            raise DimensionMismatchError(expected=self.dimension, actual=len(vector), record_id=record_id)

    def validate_records(self, records: list[VectorRecord]) -> None:
        """
        Checks every record of a batch before anything is written.

        Raises:
            DimensionMismatchError: On the first record whose vector has the wrong length.
        """
        for record in records:
            self.validate_vector(record.embedding, record_id=record.id)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    def get_dimension(self) -> int:
        """Returns the vector dimension D declared by the index."""
        return self.dimension

    def get_distance(self) -> DistanceMetric:
        """Returns the distance metric declared by the index."""
        return self.distance

    ##########################################
    ########## ENGINE OPERATIONS #############
    ##########################################

    @abstractmethod
    async def _do_upsert_records(self, records: list[VectorRecord]) -> None:
        """
        Writes already validated records to the backend, replacing records with the same id.

        Raises:
            Exception: Any backend failure. Transient failures are retried by do_upsert().
        """
        pass

    @abstractmethod
    async def _do_search_records(self, vector: list[float], top_k: int, filters: dict[str, Any] | None) -> list[SearchResult]:
        """
        Runs a nearest-neighbour search on the backend.

        Returns:
            list[SearchResult]: At most top_k hits, ordered by ascending distance.
        """
        pass

    @abstractmethod
    async def _do_list_record_ids(self, filters: dict[str, Any]) -> list[str]:
        """
        Returns the ids of every record whose metadata matches all filters.
        """
        pass

    @abstractmethod
    async def _do_delete_record_ids(self, record_ids: list[str]) -> None:
        """
        Deletes the records with the given ids; unknown ids are ignored.
        """
        pass

    @abstractmethod
    async def do_count(self) -> int:
        """
        Returns the number of records in the index.
        """
        pass

    @abstractmethod
    async def do_existence_check(self) -> bool:
        """
        Returns True if the collection backing the index exists.
        """
        pass

    @abstractmethod
    async def do_create_collection(self) -> None:
        """
        Creates the collection with the declared dimension and distance metric.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _do_with_retry(self, operation: Callable[[], Awaitable[T]], label: str) -> T:
        """Run an engine operation with retries and map failures to VectorIndexError."""
        try:
            return await do_with_retry(
                operation,
                logger=self.logging,
                label=f"{label} on '{self.get_engine_name()}'",
                attempts=self.retry_attempts,
                base_delay=self.retry_base_delay,
            )
        except VectorIndexError:
            raise
        except Exception as exc:
            self.logging.error("%s on '%s' failed: %s", label, self.get_engine_name(), exc)
            raise VectorIndexError(f"{label} on '{self.get_engine_name()}' failed: {exc}", cause=exc) from exc

    async def do_ensure_collection(self) -> None:
        """Create the collection unless it already exists."""
        if not await self.do_existence_check():
            self.logging.info(
                "Creating %s collection (dimension=%d, distance=%s).",
                self.get_engine_name(), self.dimension, self.distance.value,
            )
            await self.do_create_collection()

    async def do_upsert(self, records: list[VectorRecord]) -> None:
        """Insert or replace records by id. Safe to resubmit after a failure.

        The whole batch is validated first, so a dimension mismatch writes nothing.

        Args:
            records (list[VectorRecord]): Records to upsert.

        Raises:
            DimensionMismatchError: If any record has the wrong dimension.
            VectorIndexError: If the backend keeps failing after retries, or fails persistently.
        """
        if not records:
            return
        self.validate_records(records)
        await self._do_with_retry(lambda: self._do_upsert_records(records), label=f"Upsert of {len(records)} records")
        self.logging.debug("Upserted %d records into '%s'.", len(records), self.get_engine_name())

    async def do_search(self, vector: list[float], top_k: int, filters: dict[str, Any] | None = None) -> list[SearchResult]:
        """Return the top_k records nearest to vector, ordered by ascending distance.

        Args:
            vector (list[float]): Query vector of the index dimension.
            top_k (int): Maximum number of results (>= 1).
            filters (dict[str, Any] | None): Exact metadata matches; a list value matches any member.

        Returns:
            list[SearchResult]: At most top_k results.

        Raises:
            ValueError: If top_k is smaller than 1.
            DimensionMismatchError: If the query vector has the wrong dimension.
            VectorIndexError: If the backend keeps failing after retries, or fails persistently.
        """
        if top_k < 1:
            raise ValueError(f"top_k must be at least 1, got {top_k}.")
        self.validate_vector(vector)
        results = await self._do_with_retry(lambda: self._do_search_records(vector, top_k, filters), label="Search")
        return results[:top_k]

    async def do_list_record_ids(self, filters: dict[str, Any]) -> list[str]:
        """Ids of all records matching filters, e.g. every chunk of one source.

        Raises:
            ValueError: If filters is empty.
            VectorIndexError: If the backend keeps failing after retries, or fails persistently.
        """
        if not filters:
            raise ValueError("Refusing to list the whole index.")
        return await self._do_with_retry(lambda: self._do_list_record_ids(filters), label="Id listing")

    async def do_delete_record_ids(self, record_ids: list[str]) -> None:
        """Delete records by id. An empty list is a no-op.

        Raises:
            VectorIndexError: If the backend keeps failing after retries, or fails persistently.
        """
        if not record_ids:
            return
        await self._do_with_retry(lambda: self._do_delete_record_ids(record_ids), label=f"Delete of {len(record_ids)} records")
        self.logging.debug("Deleted %d records from '%s'.", len(record_ids), self.get_engine_name())

    ##########################################
    ################# OTHER ##################
    ##########################################

    @staticmethod
    def matches_filters(metadata: dict[str, Any], filters: dict[str, Any] | None) -> bool:
        """Exact-match filter semantics shared by all engines."""
        if not filters:
            return True
        for key, expected in filters.items():
            actual = metadata.get(key)
            if isinstance(expected, (list, tuple, set)):
                if actual not in expected:
                    return False
            elif actual != expected:
                return False
        return True
