"""Compact output formatters for MCP tool responses."""

from profile_kb.answer.context import Citation
from profile_kb.ingest.importer import ImportReport
from profile_kb.ingest.writer import BackfillReport
from profile_kb.models.dedup import DuplicatePair
from profile_kb.models.search import SearchMode, SearchResponse, SearchResult


def format_scores(result: SearchResult) -> str:
    """Format: 82% (semantic 91%, lexical 61%). Breakdown only for hybrid results."""
    line = f"{result.relevance_score:.0%}"
    if result.hybrid_score is None:
        return line
    parts: list[str] = []
    if result.semantic_score is not None:
        parts.append(f"semantic {result.semantic_score:.0%}")
    if result.lexical_score is not None:
        parts.append(f"lexical {result.lexical_score:.0%}")
    return f"{line} ({', '.join(parts)})" if parts else line


def format_result_compact(result: SearchResult) -> str:
    """Header line with id, type, title and scores, then the body."""
    ref = result.source_entity.id if result.source_entity else result.item_id
    lines = [f"[{ref}] {result.content_type.value} | {result.title} ({format_scores(result)})"]
    if result.body and result.body != result.title:
        lines.append(f"  {result.body}")
    if result.enrichment_error:
        lines.append("  [source details unavailable]")
    return "\n".join(lines)


def format_result_list(
    formatted_entries: list[str],
    header: str | None = None,
    note: str | None = None,
) -> str:
    """Count + note + entries joined by blank lines."""
    if not formatted_entries:
        if note:
            return f"No results found.\nNote: {note}"
        return "No results found."

    lines: list[str] = []
    if header:
        lines.append(header)
    lines.append(f"{len(formatted_entries)} result(s)")
    if note:
        lines.append(f"Note: {note}")
    lines.append("")
    lines.append("\n\n".join(formatted_entries))
    return "\n".join(lines)


def format_search_response(response: SearchResponse) -> str:
    """Full kb_search output, including mode and effective weights."""
    header = f"Mode: {response.mode.value}"
    if response.mode == SearchMode.HYBRID and response.weights is not None:
        header += (
            f" (semantic {response.weights.semantic:.2f},"
            f" lexical {response.weights.lexical:.2f})"
        )
    entries = [format_result_compact(r) for r in response.results]
    return format_result_list(entries, header=header, note=response.note)


def format_citations(citations: list[Citation]) -> str:
    """One line per citation: - [id] Title."""
    return "\n".join(f"- [{c.id}] {c.title}" for c in citations)


def format_import_report(report: ImportReport) -> str:
    """Summary line followed by skipped and failed facts."""
    lines = [report.summary()]
    for skipped in report.skipped:
        similarity = f", {skipped.similarity:.0%}" if skipped.similarity is not None else ""
        lines.append(
            f"  skipped {skipped.content_type.value}: {skipped.title}"
            f" (matches {skipped.matched_id or 'existing item'}{similarity})"
        )
    for failed in report.failed:
        lines.append(f"  failed {failed.content_type.value}: {failed.title} ({failed.error})")
    return "\n".join(lines)


def format_backfill_report(report: BackfillReport) -> str:
    """Backfilled count, removed duplicates, and why the pass stopped early."""
    lines = [f"Backfilled {len(report.filled)} pending items"]
    if report.duplicates_removed:
        lines.append(
            f"  removed {len(report.duplicates_removed)} pending duplicates: "
            + ", ".join(report.duplicates_removed)
        )
    if report.stopped:
        lines.append(f"  stopped early: {report.stopped}")
    return "\n".join(lines)


def format_duplicate_pairs(pairs: list[DuplicatePair]) -> str:
    """One line per pair: - [duplicate] text -> duplicates [kept] text (93%)."""
    if not pairs:
        return "No existing duplicates found."
    lines = [f"Found {len(pairs)} existing duplicates:"]
    for pair in pairs:
        lines.append(
            f"- {pair.content_type.value} [{pair.duplicate_entity_id or pair.duplicate_item_id}]"
            f" {pair.duplicate_text} -> duplicates"
            f" [{pair.kept_entity_id or pair.kept_item_id}] {pair.kept_text}"
            f" ({pair.similarity:.0%})"
        )
    return "\n".join(lines)
