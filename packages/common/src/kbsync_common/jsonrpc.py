"""JSON-RPC 2.0 framing over Unix domain sockets.

Both processes serve and call each other with the same framing: one request
per connection, the caller closes its write end after sending and reads the
response until EOF.

    Request:
        {"jsonrpc": "2.0", "method": "sync_bases", "params": {"entries": []}, "id": 1}

    Response:
        {"jsonrpc": "2.0", "result": {"accepted": true}, "id": 1}

    Error:
        {"jsonrpc": "2.0", "error": {"code": -32001, "message": "..."}, "id": 1}
"""

import asyncio
import itertools
import json
from typing import Any, Awaitable, Callable, Optional, Protocol

from pydantic import ValidationError

from kbsync_common.errors import (
    ChannelError,
    ChannelTimeoutError,
    KBSyncError,
    error_from_rpc,
)
from kbsync_common.logging_config import get_logger

logger = get_logger(__name__)

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

MAX_MESSAGE_BYTES = 16 * 1024 * 1024

Dispatcher = Callable[[str, dict[str, Any]], Awaitable[Any]]


class PeerChannel(Protocol):
    """Anything that can deliver a JSON-RPC call to the other process."""

    async def call(self, method: str, params: Optional[dict[str, Any]] = None) -> Any: ...


def make_response(
    result: Any = None,
    error: Optional[dict] = None,
    request_id: Optional[int | str] = None,
) -> bytes:
    """Create JSON-RPC response.

    Args:
        result: Success result (mutually exclusive with error)
        error: Error dict with code and message
        request_id: Request ID to echo back

    Returns:
        Encoded JSON-RPC response
    """
    response = {"jsonrpc": "2.0", "id": request_id}

    if error is not None:
        response["error"] = error
    else:
        response["result"] = result

    return json.dumps(response).encode("utf-8")


def make_error(
    code: int,
    message: str,
    request_id: Optional[int | str] = None,
    data: Optional[dict] = None,
) -> bytes:
    """Create JSON-RPC error response.

    Args:
        code: Error code (negative integer)
        message: Error message
        request_id: Request ID
        data: Optional structured context (which base, which stage)

    Returns:
        Encoded error response
    """
    error: dict[str, Any] = {"code": code, "message": message}
    if data:
        error["data"] = data
    return make_response(error=error, request_id=request_id)


def _validation_details(exc: ValidationError) -> dict[str, Any]:
    return {
        "details": [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
    }


async def process_request(data: bytes, dispatch: Dispatcher) -> bytes:
    """Handle a single JSON-RPC request.

    Args:
        data: Raw request bytes
        dispatch: Coroutine called with (method, params)

    Returns:
        Response bytes
    """
    request_id = None

    try:
        try:
            request = json.loads(data.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("parse_error", error=str(e))
            return make_error(PARSE_ERROR, f"Parse error: {e}")

        if not isinstance(request, dict):
            return make_error(INVALID_REQUEST, "Request must be an object")

        request_id = request.get("id")
        if request.get("jsonrpc") != "2.0":
            return make_error(INVALID_REQUEST, "Missing or invalid jsonrpc version", request_id)

        method = request.get("method")
        if not method or not isinstance(method, str):
            return make_error(INVALID_REQUEST, "Missing or invalid method", request_id)

        params = request.get("params", {})
        if params is None:
            params = {}
        if isinstance(params, list):
            return make_error(
                INVALID_PARAMS,
                "Positional params not supported, use named params",
                request_id,
            )
        if not isinstance(params, dict):
            params = {}

        try:
            result = await dispatch(method, params)
            return make_response(result=result, request_id=request_id)

        except ValidationError as e:
            return make_error(
                INVALID_PARAMS,
                f"Invalid params for {method}",
                request_id,
                data=_validation_details(e),
            )

        except KBSyncError as e:
            return make_error(e.code, str(e), request_id, data=e.context)

        except ValueError as e:
            if "Method not found" in str(e):
                return make_error(METHOD_NOT_FOUND, str(e), request_id)
            return make_error(INVALID_PARAMS, str(e), request_id)

        except Exception as e:
            logger.exception("method_error", method=method, error=str(e))
            return make_error(INTERNAL_ERROR, f"Internal error: {e}", request_id)

    except Exception as e:
        logger.exception("request_error", error=str(e))
        return make_error(INTERNAL_ERROR, f"Unexpected error: {e}", request_id)


async def read_message(reader: asyncio.StreamReader) -> bytes:
    """Read one framed message (everything up to EOF).

    Raises:
        ValueError: If the message exceeds MAX_MESSAGE_BYTES
    """
    chunks = []
    total = 0
    while True:
        chunk = await reader.read(65536)
        if not chunk:
            break
        total += len(chunk)
        if total > MAX_MESSAGE_BYTES:
            raise ValueError(f"Message exceeds {MAX_MESSAGE_BYTES} bytes")
        chunks.append(chunk)

    return b"".join(chunks)


class JsonRpcClient:
    """Async JSON-RPC client for a peer process socket.

    Each call opens a fresh connection, so calls issued concurrently never
    share a stream.
    """

    _ids = itertools.count(1)

    def __init__(self, socket_path: str, timeout: float = 10.0) -> None:
        """Initialize client.

        Args:
            socket_path: Peer Unix socket path
            timeout: Seconds allowed for connect and for the response
        """
        self.socket_path = socket_path
        self.timeout = timeout

    async def call(self, method: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Send a request and wait for its result.

        Raises:
            ChannelError: Peer unreachable
            ChannelTimeoutError: Peer did not answer in time
            KBSyncError: Peer returned a JSON-RPC error (mapped by code)
        """
        request = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or {},
            "id": next(JsonRpcClient._ids),
        }

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_unix_connection(self.socket_path), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise ChannelTimeoutError(f"Connect to {self.socket_path} timed out")
        except OSError as e:
            raise ChannelError(f"Cannot connect to peer at {self.socket_path}: {e}")

        try:
            writer.write(json.dumps(request).encode("utf-8"))
            await writer.drain()
            writer.write_eof()
            raw = await asyncio.wait_for(read_message(reader), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ChannelTimeoutError(f"Peer timeout after {self.timeout}s ({method})")
        except OSError as e:
            raise ChannelError(f"Connection to {self.socket_path} failed: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

        try:
            response = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ChannelError(f"Invalid response from peer: {e}")

        if response.get("error"):
            raise error_from_rpc(response["error"])

        return response.get("result")
