"""Retrieval and rerank collaborators.

The core only depends on the ``Retriever`` and ``Reranker`` protocols. The
default implementations talk to the retrieval engine over its Unix socket
using a simple JSON protocol:

    {"action": "retrieve", "query": "...", "base": {...params}}
    {"action": "rerank", "query": "...", "base": {...}, "results": [...]}

    -> {"results": [{"content": "...", "score": 0.8, "metadata": {}}]}
    -> {"error": "..."}
"""

import asyncio
import json
from typing import Any, Protocol, Sequence

from kbsync_common import get_logger, retry_on_exception
from kbsync_contracts import KnowledgeBaseParams, ScoredResult

logger = get_logger(__name__)

BUFFER_SIZE = 131072  # 128KB
SOCKET_TIMEOUT = 30.0


class Retriever(Protocol):
    async def retrieve(self, query: str, params: KnowledgeBaseParams) -> list[ScoredResult]: ...


class Reranker(Protocol):
    async def rerank(
        self,
        query: str,
        params: KnowledgeBaseParams,
        results: Sequence[ScoredResult],
    ) -> list[ScoredResult]: ...


class EngineClient:
    """Async client for the retrieval engine socket."""

    def __init__(self, socket_path: str, timeout: float = SOCKET_TIMEOUT) -> None:
        """Initialize engine client.

        Args:
            socket_path: Path to the retrieval engine Unix socket
            timeout: Seconds allowed per request
        """
        self.socket_path = socket_path
        self.timeout = timeout

    @retry_on_exception(
        exception_types=(ConnectionError,),
        max_attempts=3,
        min_wait_seconds=0.5,
        max_wait_seconds=2.0,
    )
    async def _send_request(self, request: dict[str, Any]) -> dict[str, Any]:
        """Send one request to the engine.

        Raises:
            ConnectionError: Engine not reachable (retried)
            TimeoutError: Engine did not answer in time
            ValueError: Engine returned an error or invalid JSON (not retried)
        """
        try:
            reader, writer = await asyncio.open_unix_connection(self.socket_path)
        except FileNotFoundError:
            raise ConnectionError(f"Retrieval engine not running at {self.socket_path}")

        try:
            writer.write(json.dumps(request).encode("utf-8"))
            await writer.drain()
            writer.write_eof()

            chunks = []
            while True:
                chunk = await asyncio.wait_for(reader.read(BUFFER_SIZE), timeout=self.timeout)
                if not chunk:
                    break
                chunks.append(chunk)
        except asyncio.TimeoutError:
            raise TimeoutError(f"Retrieval engine timed out after {self.timeout}s")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

        try:
            response = json.loads(b"".join(chunks).decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValueError(f"Invalid response from retrieval engine: {e}")

        if "error" in response:
            raise ValueError(f"Retrieval engine error: {response['error']}")

        return response

    @staticmethod
    def _parse_results(response: dict[str, Any]) -> list[ScoredResult]:
        return [ScoredResult.model_validate(item) for item in response.get("results", [])]


class SocketRetriever(EngineClient):
    """Vector retrieval through the engine socket."""

    async def retrieve(self, query: str, params: KnowledgeBaseParams) -> list[ScoredResult]:
        response = await self._send_request(
            {"action": "retrieve", "query": query, "base": params.model_dump(mode="json")}
        )
        return self._parse_results(response)


class SocketReranker(EngineClient):
    """Cross-encoder reranking through the engine socket."""

    async def rerank(
        self,
        query: str,
        params: KnowledgeBaseParams,
        results: Sequence[ScoredResult],
    ) -> list[ScoredResult]:
        response = await self._send_request(
            {
                "action": "rerank",
                "query": query,
                "base": params.model_dump(mode="json"),
                "results": [r.model_dump(mode="json") for r in results],
            }
        )
        return self._parse_results(response)
