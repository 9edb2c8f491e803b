"""kb_search MCP tool: semantic, lexical or hybrid retrieval."""

import logging
from typing import Annotated, Any

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from profile_kb.errors import InvalidInput, StoreUnavailable
from profile_kb.models.item import ContentType
from profile_kb.models.search import SearchMode
from profile_kb.search.hybrid import hybrid_search, lexical_search, semantic_search
from profile_kb.tools.formatters import format_search_response

logger = logging.getLogger(__name__)


async def run_search(
    lifespan: dict[str, Any],
    owner_id: str,
    query: str,
    mode: SearchMode = SearchMode.HYBRID,
    limit: int | None = None,
    content_types: list[ContentType] | None = None,
    semantic_weight: float | None = None,
) -> str:
    """Run one search against the server's store and format the reply."""
    db = lifespan["db"]
    embedder = lifespan["embedder"]
    try:
        if mode == SearchMode.SEMANTIC:
            response = await semantic_search(
                db,
                embedder,
                owner_id=owner_id,
                query=query,
                limit=limit,
                content_types=content_types,
            )
        elif mode == SearchMode.LEXICAL:
            response = await lexical_search(
                db,
                embedder,
                owner_id=owner_id,
                query=query,
                limit=limit,
                content_types=content_types,
            )
        else:
            response = await hybrid_search(
                db,
                embedder,
                owner_id=owner_id,
                query=query,
                limit=limit,
                content_types=content_types,
                semantic_weight=semantic_weight,
            )
    except InvalidInput as e:
        return f"Error: {e}"
    except StoreUnavailable as e:
        logger.error("Search failed for %s: %s", owner_id, e)
        return f"Error: search unavailable ({e}). This is not an empty result."

    return format_search_response(response)


def register_kb_search(mcp: FastMCP) -> None:
    """Register the kb_search tool with the MCP server."""

    @mcp.tool()
    async def kb_search(
        owner_id: Annotated[str, Field(description="Whose knowledge base to search")],
        query: Annotated[str, Field(description="Search query (natural language or keywords)")],
        mode: Annotated[
            SearchMode, Field(description="semantic, lexical, or hybrid (default)")
        ] = SearchMode.HYBRID,
        limit: Annotated[
            int | None, Field(description="Maximum results to return (1-100)", ge=1, le=100)
        ] = None,
        content_types: Annotated[
            list[ContentType] | None,
            Field(description="Restrict to these content types (e.g. experience, skill)"),
        ] = None,
        semantic_weight: Annotated[
            float | None,
            Field(description="Hybrid only: weight of semantic similarity (0-1)", ge=0, le=1),
        ] = None,
        ctx: Context | None = None,
    ) -> str:
        """Search a professional profile knowledge base.

        Hybrid mode blends embedding similarity with trigram text similarity
        (default weight 0.7 semantic). If the embedding service is down,
        results fall back to text similarity and say so.
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        return await run_search(
            ctx.lifespan_context,
            owner_id,
            query,
            mode=mode,
            limit=limit,
            content_types=content_types,
            semantic_weight=semantic_weight,
        )
