"""Content store backed by the argument backend's REST API."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from config.settings import StoreConfig
from dialogue_engine.exceptions import (
    IllegalMoveError,
    NotFoundError,
    StoreUnavailableError,
)
from .base_store import (
    ClaimRecord,
    ContentStore,
    JustificationNode,
    JustificationRecord,
    RebuttalCreateRequest,
    RebuttalRecord,
    RebuttalSink,
    TopicRecord,
)

logger = logging.getLogger(__name__)


class HttpContentStore(ContentStore, RebuttalSink):
    """Reads arguments from, and saves rebuttals to, the argument backend."""

    def __init__(self, config: StoreConfig, client: httpx.AsyncClient | None = None):
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url, timeout=config.timeout
        )

    @property
    def store_name(self) -> str:
        return "http"

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        not_found: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request, retrying transport failures and server errors.

        Raises:
            NotFoundError: The backend answered 404
            IllegalMoveError: The backend rejected the request as invalid (400)
            StoreUnavailableError: Retries exhausted or the body was not JSON
        """
        attempts = self.config.max_retries + 1
        last_error = "no response"

        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.request(method, path, params=params, json=json)
            except httpx.HTTPError as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.warning(f"{method} {path} failed (attempt {attempt}/{attempts}): {last_error}")
                continue

            if response.status_code == 404:
                raise NotFoundError(not_found)
            if response.status_code == 400:
                raise IllegalMoveError(response.text or "The argument backend rejected the request.")
            if response.status_code >= 500:
                last_error = f"HTTP {response.status_code}"
                logger.warning(f"{method} {path} returned {response.status_code} (attempt {attempt}/{attempts})")
                continue

            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise StoreUnavailableError(f"Argument backend refused {method} {path}: {e}") from e

            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                raise StoreUnavailableError(f"Invalid JSON from {method} {path}") from e

        logger.error(f"Argument backend unavailable for {method} {path}: {last_error}")
        raise StoreUnavailableError(f"Argument backend unavailable: {last_error}")

    def _parse(self, model: type[Any], data: Any, what: str) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise StoreUnavailableError(f"Malformed {what} from argument backend: {e}") from e

    async def fetch_topics(self) -> list[TopicRecord]:
        data = await self._request("GET", "/topics", not_found="No topics available.") or []
        return [
            TopicRecord(topic=item) if isinstance(item, str) else self._parse(TopicRecord, item, "topic")
            for item in data
        ]

    async def fetch_root_claim(self, topic: str) -> ClaimRecord:
        not_found = f"Topic not found: {topic}"
        data = await self._request(
            "GET",
            "/structured-arguments/by-topic-name",
            params={"name": topic},
            not_found=not_found,
        )
        if not data:
            raise NotFoundError(not_found)
        return self._parse(ClaimRecord, data, "root claim")

    async def fetch_justifications(self, argument_id: int) -> list[JustificationRecord]:
        data = await self._request(
            "GET",
            "/structured-arguments/justifications",
            params={"argumentId": argument_id},
            not_found=f"Argument not found with ID: {argument_id}",
        )
        return [self._parse(JustificationRecord, item, "justification") for item in data or []]

    async def resolve_argument_id(self, claim_id: int) -> int:
        not_found = "Unable to find argument for the selected justification."
        data = await self._request(
            "GET",
            "/structured-arguments/argument-by-claim",
            params={"claimId": claim_id},
            not_found=not_found,
        )
        if data is None:
            raise NotFoundError(not_found)
        try:
            return int(data)
        except (TypeError, ValueError) as e:
            raise StoreUnavailableError(f"Malformed argument id from argument backend: {data!r}") from e

    async def fetch_justification_tree(self, topic: str) -> JustificationNode:
        not_found = f"No justification tree for topic: {topic}"
        data = await self._request(
            "GET", "/structured-arguments/tree", params={"topic": topic}, not_found=not_found
        )
        if not data:
            raise NotFoundError(not_found)

        if isinstance(data, list):
            # Bare list of top-level justifications; hang them off the root claim
            claim = await self.fetch_root_claim(topic)
            data = {**claim.model_dump(), "children": data}
        return self._parse(JustificationNode, data, "justification tree")

    async def fetch_rebuttals(self, target_id: int) -> list[RebuttalRecord]:
        data = await self._request(
            "GET",
            "/rebuttals",
            params={"targetClaimId": target_id},
            not_found=f"Target statement not found: {target_id}",
        )
        records = [
            self._parse(RebuttalRecord, {"targetClaimId": target_id, **item}, "rebuttal")
            for item in data or []
        ]
        return sorted(records, key=lambda r: r.created_at)

    async def create_rebuttal(self, request: RebuttalCreateRequest) -> RebuttalRecord:
        payload = {
            "targetClaimId": request.target_claim_id,
            "text": request.text,
            "author": request.author,
            "source": request.author,
        }
        data = await self._request(
            "POST",
            "/rebuttals",
            json=payload,
            not_found=f"Target statement not found: {request.target_claim_id}",
        )
        if not data:
            raise StoreUnavailableError("Argument backend returned no rebuttal record.")

        # The backend echoes only part of the record; fill in what we sent
        merged = {
            "targetClaimId": request.target_claim_id,
            "text": request.text,
            "author": request.author,
            **data,
        }
        record = self._parse(RebuttalRecord, merged, "rebuttal")
        logger.info(f"Saved rebuttal {record.id} against statement {request.target_claim_id}")
        return record
