#!/usr/bin/env python3
"""Embed two texts and show how the dedup gate would treat them.

Usage:
    uv run python scripts/check_similarity.py "Technical Lead at IHG" \
        "Technical Lead Consultant at IHG" --type experience

Uses the configured embedding provider (PKB_EMBEDDING_PROVIDER etc.), so
the numbers match what the gate sees in production. Handy when tuning
PKB_DEDUP_THRESHOLDS. Vectors are rounded to float32 first, as the store keeps
them.
"""

import argparse
import asyncio
import math
import struct
import sys

from profile_kb.config import get_dedup_thresholds
from profile_kb.errors import EmbeddingUnavailable
from profile_kb.models.item import ContentType
from profile_kb.search.embeddings import EmbeddingClient

# Scores this close to a threshold can land on either side in the store
BORDERLINE = 1e-6


def as_float32(vec: list[float]) -> list[float]:
    """Round a vector to float32, the precision item vectors are stored and compared at."""
    return list(struct.unpack(f"{len(vec)}f", struct.pack(f"{len(vec)}f", *vec)))


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two equal-length vectors, after rounding both to float32.

    The sum itself runs in float64, so results can still differ from the
    store's in the last few digits.
    """
    a, b = as_float32(a), as_float32(b)
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


async def run(first: str, second: str, content_type: ContentType) -> int:
    """Print the similarity and the gate's verdict. Returns an exit code."""
    embedder = EmbeddingClient()
    print(f"Embedding with {embedder.provider} model {embedder.model} ({embedder.dim}d)...")
    try:
        a = await embedder.embed(first)
        b = await embedder.embed(second)
    except EmbeddingUnavailable as e:
        print(f"  Embedding service unavailable: {e}")
        return 1
    finally:
        await embedder.close()

    similarity = cosine_similarity(a, b)
    print(f"  A: {first}")
    print(f"  B: {second}")
    print(f"  Cosine similarity: {similarity:.4f}")

    threshold = get_dedup_thresholds().get(content_type)
    if threshold is None:
        print(f"  {content_type.value} is not gated: both would be created")
    elif similarity >= threshold:
        print(f"  DUPLICATE: {similarity:.4f} >= {threshold:.2f} ({content_type.value})")
    else:
        print(f"  distinct: {similarity:.4f} < {threshold:.2f} ({content_type.value})")
    if threshold is not None and abs(similarity - threshold) < BORDERLINE:
        print("  borderline: the store's float32 arithmetic may decide either way")
    return 0


def main() -> None:
    """Parse arguments and run the comparison."""
    parser = argparse.ArgumentParser(description="Check embedding similarity of two texts")
    parser.add_argument("first", help="Rendered text of the existing fact")
    parser.add_argument("second", help="Rendered text of the candidate fact")
    parser.add_argument(
        "--type",
        dest="content_type",
        type=ContentType,
        choices=list(ContentType),
        default=ContentType.EXPERIENCE,
        help="Content type whose dedup threshold applies (default: experience)",
    )
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args.first, args.second, args.content_type)))


if __name__ == "__main__":
    main()
