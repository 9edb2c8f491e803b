"""kb_maintain MCP tool: knowledge base maintenance operations."""

import logging
from typing import Annotated, Any

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from profile_kb.dedup.gate import DeduplicationGate
from profile_kb.errors import InvalidInput, StoreUnavailable
from profile_kb.ingest.writer import FactWriter
from profile_kb.models.item import ContentType
from profile_kb.tools.formatters import format_backfill_report, format_duplicate_pairs

logger = logging.getLogger(__name__)

_ACTIONS = {"backfill", "find_duplicates"}


async def run_maintenance(
    lifespan: dict[str, Any],
    action: str,
    owner_id: str | None = None,
    content_type: ContentType | None = None,
    limit: int = 100,
) -> str:
    """Dispatch one maintenance action and format the reply."""
    if action not in _ACTIONS:
        return f"Unknown action '{action}'. Use: {', '.join(sorted(_ACTIONS))}"
    try:
        if action == "backfill":
            return await _action_backfill(lifespan["writer"], owner_id, limit)
        return await _action_find_duplicates(lifespan["gate"], owner_id, content_type)
    except InvalidInput as e:
        return f"Error: {e}"
    except StoreUnavailable as e:
        logger.warning("kb_maintain %s failed: %s", action, e)
        return f"Error: knowledge store unavailable ({e})"


async def _action_backfill(writer: FactWriter, owner_id: str | None, limit: int) -> str:
    """Write items for entities whose embedding failed earlier."""
    report = await writer.backfill_missing_items(owner_id or None, limit)
    return format_backfill_report(report)


async def _action_find_duplicates(
    gate: DeduplicationGate, owner_id: str | None, content_type: ContentType | None
) -> str:
    """List stored items the gate would have blocked, for every gated type by default."""
    if not owner_id:
        return "Error: owner_id is required for find_duplicates action."
    types = [content_type] if content_type else [ct for ct in ContentType if gate.threshold_for(ct)]
    pairs = []
    for ct in types:
        pairs.extend(await gate.find_existing_duplicates(owner_id, ct))
    return format_duplicate_pairs(pairs)


def register_kb_maintain(mcp: FastMCP) -> None:
    """Register the kb_maintain tool with the MCP server."""

    @mcp.tool()
    async def kb_maintain(
        action: Annotated[
            str,
            Field(description="Maintenance action: backfill, find_duplicates"),
        ],
        owner_id: Annotated[
            str | None,
            Field(description="Required for find_duplicates; narrows backfill to one owner"),
        ] = None,
        content_type: Annotated[
            ContentType | None,
            Field(description="For find_duplicates: one content type (default: all gated)"),
        ] = None,
        limit: Annotated[
            int,
            Field(description="For backfill: max pending entities to process", ge=1, le=1000),
        ] = 100,
        ctx: Context | None = None,
    ) -> str:
        """Administrative maintenance operations for the knowledge base.

        Actions:
        - backfill: Write the searchable items of facts stored while the
          embedding service was down. Pending facts that now duplicate an
          existing one are removed instead.
        - find_duplicates: Report stored facts that near-duplicate an older
          fact of the same type and scope (requires owner_id). Read-only.
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        return await run_maintenance(ctx.lifespan_context, action, owner_id, content_type, limit)
