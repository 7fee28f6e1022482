"""In-process implementation of RAGClientInterface.

Keeps all records in a dict and scans them linearly on search. Meant for
tests and single-process deployments; nothing is persisted.

Equal distances are ranked by insertion order: the record inserted first
wins the higher rank. Re-upserting an id replaces its vector and metadata
but keeps its original insertion position.
"""

import math
from typing import Any

import httpx

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.vector import DistanceMetric, SearchResult, VectorRecord


class RAGClientMemory(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        # id -> (insertion sequence, record)
        self._records: dict[str, tuple[int, VectorRecord]] = {}
        self._sequence = 0
        self._created = False

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Memory"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return []

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return "memory://"

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    ##########################################
    ################ DISTANCE ################
    ##########################################

    def _distance(self, a: list[float], b: list[float]) -> float:
        if self.distance is DistanceMetric.EUCLID:
            return sum((x - y) ** 2 for x, y in zip(a, b))
        dot = sum(x * y for x, y in zip(a, b))
        if self.distance is DistanceMetric.DOT:
            return 1.0 - dot
        norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
        if norm == 0.0:
            # zero vectors have no direction: treat as orthogonal
            return 1.0
        # clamp float noise so identical vectors report exactly 0
        return min(2.0, max(0.0, 1.0 - dot / norm))

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def boot(self) -> None:
        """Nothing to connect to."""

    async def close(self) -> None:
        """Nothing to release; records stay available until the object is dropped."""

    def is_booted(self) -> bool:
        return True

    async def do_healthcheck(self) -> httpx.Response:
        return httpx.Response(200)

    async def do_existence_check(self) -> bool:
        return self._created

    async def do_create_collection(self) -> None:
        self._created = True

    async def do_count(self) -> int:
        return len(self._records)

    async def _do_upsert_records(self, records: list[VectorRecord]) -> None:
        # build the new entries first, then swap them in with a single update
        staged: dict[str, tuple[int, VectorRecord]] = {}
        sequence = self._sequence
        for record in records:
            existing = staged.get(record.id) or self._records.get(record.id)
            if existing is not None:
                seq = existing[0]
            else:
                seq = sequence
                sequence += 1
            staged[record.id] = (seq, record.model_copy(deep=True))
        self._records.update(staged)
        self._sequence = sequence
        self._created = True

    async def _do_search_records(self, vector: list[float], top_k: int, filters: dict[str, Any] | None) -> list[SearchResult]:
        snapshot = list(self._records.values())
        scored: list[tuple[float, int, VectorRecord]] = []
        for seq, record in snapshot:
            if not self.matches_filters(record.metadata, filters):
                continue
            scored.append((self._distance(vector, record.embedding), seq, record))
        scored.sort(key=lambda item: (item[0], item[1]))
        return [
            SearchResult(id=record.id, distance=distance, metadata=dict(record.metadata))
            for distance, _, record in scored[:top_k]
        ]

    async def _do_list_record_ids(self, filters: dict[str, Any]) -> list[str]:
        return [
            record_id for record_id, (_, record) in sorted(self._records.items(), key=lambda item: item[1][0])
            if self.matches_filters(record.metadata, filters)
        ]

    async def _do_delete_record_ids(self, record_ids: list[str]) -> None:
        for record_id in record_ids:
            self._records.pop(record_id, None)
