"""kb-sync daemon - knowledge base replica and search service via Unix socket.

Provides JSON-RPC 2.0 interface for:
- sync_bases: Snapshot pushes from the owner process
- list_bases: Synced knowledge base metadata
- search: Threshold-filtered, optionally reranked search
- health: Session and replica status
"""

__version__ = "0.1.0"
