"""FastMCP server with lifespan management and tool registration."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP

from profile_kb.config import get_database_url, get_db_path, get_embedding_dim, get_log_level
from profile_kb.db.connection import create_connection
from profile_kb.dedup.gate import DeduplicationGate
from profile_kb.errors import StoreUnavailable
from profile_kb.ingest.importer import ProfileImporter
from profile_kb.ingest.writer import FactWriter
from profile_kb.search.embeddings import EmbeddingClient
from profile_kb.store.knowledge_store import KnowledgeStore
from profile_kb.tools.kb_context import register_kb_context
from profile_kb.tools.kb_import import register_kb_import
from profile_kb.tools.kb_maintain import register_kb_maintain
from profile_kb.tools.kb_search import register_kb_search


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Own the store handle and embedding client for the server's lifetime."""
    # Configure logging to stderr (stdout is MCP stdio transport)
    logging.basicConfig(
        level=getattr(logging, get_log_level()),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    logger = logging.getLogger(__name__)

    location = "PostgreSQL" if get_database_url() else get_db_path()
    logger.info("Opening knowledge store at %s", location)
    db = await create_connection(embedding_dim=get_embedding_dim())

    embedder = EmbeddingClient()
    store = KnowledgeStore(db)
    gate = DeduplicationGate(db, embedder)
    writer = FactWriter(store, gate, embedder)
    importer = ProfileImporter(writer)

    if await embedder.is_available():
        logger.info("Embedding service available (%s): semantic search enabled", embedder.model)
        # Catch up on facts stored while the service was down
        try:
            await writer.backfill_missing_items()
        except StoreUnavailable as e:
            logger.warning("Startup backfill skipped: %s", e)
    else:
        logger.warning("Embedding service unavailable: searches will be lexical-only")

    try:
        yield {
            "db": db,
            "store": store,
            "embedder": embedder,
            "gate": gate,
            "writer": writer,
            "importer": importer,
        }
    finally:
        await embedder.close()
        await db.close()
        logger.info("Knowledge store closed")


_INSTRUCTIONS = """\
This server holds professional-profile knowledge (experience, education, \
skills, projects, testimonials) for one or more owners.

- kb_search: Ranked lookup. Hybrid mode (default) blends meaning-based and \
text-based similarity; semantic and lexical modes use one signal each.
- kb_context: Facts relevant to a question, grouped into a prompt-ready block.
- kb_import: Write facts extracted from a resume, profile text or repository. \
Facts already in the knowledge base are skipped and reported, not duplicated.
- kb_maintain: Backfill facts stored while embeddings were unavailable, or \
report stored facts that near-duplicate older ones.
"""


def create_server() -> FastMCP:
    """Create and configure the MCP server with all tools."""
    mcp = FastMCP(
        "profile-kb",
        instructions=_INSTRUCTIONS,
        lifespan=lifespan,
    )

    register_kb_search(mcp)
    register_kb_context(mcp)
    register_kb_import(mcp)
    register_kb_maintain(mcp)

    return mcp
