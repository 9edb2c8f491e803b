"""kb_import MCP tool: write extracted profile facts through the dedup gate."""

from typing import Annotated

from fastmcp import FastMCP
from fastmcp.server.context import Context
from pydantic import Field

from profile_kb.errors import InvalidInput
from profile_kb.ingest.importer import ExtractedProfile, ProfileImporter
from profile_kb.models.item import IngestSource
from profile_kb.tools.formatters import format_import_report


async def run_import(
    importer: ProfileImporter, owner_id: str, source: IngestSource, profile: ExtractedProfile
) -> str:
    """Import a profile and format the per-fact report."""
    try:
        report = await importer.import_profile(owner_id, profile, source)
    except InvalidInput as e:
        return f"Error: {e}"
    return format_import_report(report)


def register_kb_import(mcp: FastMCP) -> None:
    """Register the kb_import tool with the MCP server."""

    @mcp.tool()
    async def kb_import(
        owner_id: Annotated[str, Field(description="Whose knowledge base to write to")],
        source: Annotated[
            IngestSource,
            Field(description="Pipeline the facts came from: resume, profile_text, repository"),
        ],
        profile: Annotated[
            ExtractedProfile,
            Field(
                description=(
                    "Extracted facts: experiences, education, skills, testimonials, projects"
                )
            ),
        ],
        ctx: Context | None = None,
    ) -> str:
        """Import structured profile facts, skipping ones already known.

        Each fact is checked against existing facts of the same type before
        it is written; near-identical wording (e.g. "Tech Lead" vs
        "Technical Lead" at the same company and start date) counts as a
        duplicate. The reply reports how many duplicates were skipped.
        """
        if ctx is None:
            raise RuntimeError("Context not injected")
        return await run_import(ctx.lifespan_context["importer"], owner_id, source, profile)
