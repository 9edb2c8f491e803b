"""kb_context MCP tool: retrieval plus prompt context for answering a question."""

import logging
from typing import Annotated, Any

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from profile_kb.answer.context import build_context
from profile_kb.config import get_context_limit
from profile_kb.errors import InvalidInput, StoreUnavailable
from profile_kb.search.hybrid import hybrid_search

logger = logging.getLogger(__name__)


async def gather_context(
    lifespan: dict[str, Any], owner_id: str, question: str, limit: int | None = None
) -> str:
    """Hybrid search for a question, rendered as a grouped prompt block."""
    try:
        response = await hybrid_search(
            lifespan["db"], lifespan["embedder"], owner_id=owner_id, query=question
        )
    except InvalidInput as e:
        return f"Error: {e}"
    except StoreUnavailable as e:
        logger.error("Context retrieval failed for %s: %s", owner_id, e)
        return f"Error: search unavailable ({e}). This is not an empty result."

    if not response.results:
        return "No relevant facts found."

    budget = limit if limit is not None else get_context_limit()
    context = build_context(response.results, budget)
    if response.note:
        return f"Note: {response.note}\n\n{context}"
    return context


def register_kb_context(mcp: FastMCP) -> None:
    """Register the kb_context tool with the MCP server."""

    @mcp.tool()
    async def kb_context(
        owner_id: Annotated[str, Field(description="Whose knowledge base to search")],
        question: Annotated[str, Field(description="The question to be answered")],
        limit: Annotated[
            int | None, Field(description="Context budget: facts to include (1-50)", ge=1, le=50)
        ] = None,
        ctx: Context | None = None,
    ) -> str:
        """Retrieve the facts relevant to a question, grouped for an answer prompt.

        Runs hybrid search over the merge budget, then keeps the top facts
        within the context budget, grouped as PROFESSIONAL EXPERIENCES,
        EDUCATION, SKILLS, PROJECTS and TESTIMONIALS.
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        return await gather_context(ctx.lifespan_context, owner_id, question, limit)
