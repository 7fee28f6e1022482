"""Qdrant implementation of RAGClientInterface, talking to the REST API via httpx.

Qdrant only accepts unsigned integers or UUIDs as point ids, so each record id
is mapped to a deterministic UUIDv5 and kept in the payload under "record_id".
Qdrant reports scores; they are converted to distances so that every engine
orders results by ascending distance.
"""

import json
import uuid
from typing import Any

from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.models.config import EnvConfig
from shared.models.vector import DistanceMetric, SearchResult, VectorRecord

# Fixed namespace for deterministic UUIDv5 point IDs.
# Changing this value would invalidate all existing point IDs in Qdrant.
_POINT_ID_NAMESPACE = uuid.UUID("6f4d3c2b-1a09-4e5f-8b7c-6d5e4f3a2b1c")

_SCROLL_PAGE_SIZE = 256

_QDRANT_DISTANCE_NAMES = {
    DistanceMetric.COSINE: "Cosine",
    DistanceMetric.DOT: "Dot",
    DistanceMetric.EUCLID: "Euclid",
}


def make_point_id(record_id: str) -> str:
    """Build the deterministic Qdrant point id for a record id.

    Args:
        record_id (str): The record (chunk) id.

    Returns:
        str: UUID string usable as a Qdrant point ID.
    """
    return str(uuid.uuid5(_POINT_ID_NAMESPACE, record_id))


class RAGClientQdrant(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._collection_name = self.get_config_val("COLLECTION", default="rag_chunks", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default="rag_chunks"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"api-key": f"{self._api_key}"}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    def _get_endpoint_collection(self) -> str:
        return f"/collections/{self._collection_name}"

    def _get_endpoint_check_collection_existence(self) -> str:
        return f"/collections/{self._collection_name}/exists"

    def _get_endpoint_points(self) -> str:
        return f"/collections/{self._collection_name}/points"

    def _get_endpoint_search(self) -> str:
        return f"/collections/{self._collection_name}/points/search"

    def _get_endpoint_scroll(self) -> str:
        return f"/collections/{self._collection_name}/points/scroll"

    def _get_endpoint_delete_points(self) -> str:
        return f"/collections/{self._collection_name}/points/delete"

    def _get_endpoint_count(self) -> str:
        return f"/collections/{self._collection_name}/points/count"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_filter_payload(self, filters: dict[str, Any] | None) -> dict | None:
        """Translate flat exact-match filters into a Qdrant "must" filter."""
        if not filters:
            return None
        conditions = []
        for key, value in filters.items():
            if isinstance(value, (list, tuple, set)):
                conditions.append({"key": key, "match": {"any": list(value)}})
            else:
                conditions.append({"key": key, "match": {"value": value}})
        return {"must": conditions}

    def get_upsert_payload(self, records: list[VectorRecord]) -> dict:
        return {
            "points": [
                {
                    "id": make_point_id(record.id),
                    "vector": record.embedding,
                    "payload": {**record.metadata, "record_id": record.id},
                }
                for record in records
            ]
        }

    def get_search_payload(self, vector: list[float], top_k: int, filters: dict[str, Any] | None) -> dict:
        payload: dict = {"vector": vector, "limit": top_k, "with_payload": True, "with_vector": False}
        qdrant_filter = self.get_filter_payload(filters)
        if qdrant_filter is not None:
            payload["filter"] = qdrant_filter
        return payload

    def get_scroll_payload(self, filters: dict[str, Any], offset: str | None = None) -> dict:
        """One page of record ids; only the "record_id" payload field is fetched."""
        payload: dict = {
            "filter": self.get_filter_payload(filters),
            "limit": _SCROLL_PAGE_SIZE,
            "with_payload": ["record_id"],
            "with_vector": False,
        }
        if offset is not None:
            payload["offset"] = offset
        return payload

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def score_to_distance(self, score: float) -> float:
        """Convert a Qdrant score to a distance under the index metric.

        Cosine and Dot scores are similarities (higher is closer); Euclid scores
        are plain euclidean distances and are squared.
        """
        if self.distance is DistanceMetric.EUCLID:
            return float(score) ** 2
        if self.distance is DistanceMetric.COSINE:
            return min(2.0, max(0.0, 1.0 - float(score)))
        return 1.0 - float(score)

    def extract_search_results(self, raw_response: dict) -> list[SearchResult]:
        results: list[SearchResult] = []
        for hit in raw_response.get("result", []) or []:
            payload = dict(hit.get("payload") or {})
            record_id = str(payload.pop("record_id", hit.get("id")))
            results.append(
                SearchResult(id=record_id, distance=self.score_to_distance(hit.get("score", 0.0)), metadata=payload)
            )
        return results

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_existence_check(self) -> bool:
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_check_collection_existence(), raise_on_error=True)
        return bool(resp.json().get("result", {}).get("exists"))

    async def do_create_collection(self) -> None:
        await self.do_request(
            method="PUT",
            json={"vectors": {"size": self.dimension, "distance": _QDRANT_DISTANCE_NAMES[self.distance]}},
            endpoint=self._get_endpoint_collection(),
            raise_on_error=True,
        )

    async def do_count(self) -> int:
        resp = await self.do_request(
            method="POST",
            json={"exact": True},
            endpoint=self._get_endpoint_count(),
            raise_on_error=True,
        )
        return int(resp.json().get("result", {}).get("count", 0))

    async def _do_upsert_records(self, records: list[VectorRecord]) -> None:
        await self.do_request(
            method="PUT",
            content=json.dumps(self.get_upsert_payload(records)),
            params={"wait": "true"},
            endpoint=self._get_endpoint_points(),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )

    async def _do_search_records(self, vector: list[float], top_k: int, filters: dict[str, Any] | None) -> list[SearchResult]:
        resp = await self.do_request(
            method="POST",
            json=self.get_search_payload(vector, top_k, filters),
            endpoint=self._get_endpoint_search(),
            raise_on_error=True,
        )
        return self.extract_search_results(resp.json())

    async def _do_list_record_ids(self, filters: dict[str, Any]) -> list[str]:
        record_ids: list[str] = []
        offset: str | None = None
        while True:
            resp = await self.do_request(
                method="POST",
                json=self.get_scroll_payload(filters, offset=offset),
                endpoint=self._get_endpoint_scroll(),
                raise_on_error=True,
            )
            result = resp.json().get("result", {}) or {}
            for point in result.get("points", []) or []:
                payload = point.get("payload") or {}
                record_ids.append(str(payload.get("record_id", point.get("id"))))
            offset = result.get("next_page_offset")
            if offset is None:
                return record_ids

    async def _do_delete_record_ids(self, record_ids: list[str]) -> None:
        await self.do_request(
            method="POST",
            json={"points": [make_point_id(record_id) for record_id in record_ids]},
            params={"wait": "true"},
            endpoint=self._get_endpoint_delete_points(),
            raise_on_error=True,
        )
