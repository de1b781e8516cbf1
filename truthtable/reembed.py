"""
Re-embed stored transcripts created with an outdated embedding model.

Vectors from different models are not comparable, so RAG skips similarity
ranking for rows whose vector_model differs from the configured one. This
job brings those rows up to date: it reads the transcript text back from
the raw archive, re-embeds it in batches, and rewrites the vectors and
model tag. Batches are separated by a fixed delay to stay under provider
rate limits.
"""

import time
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import BaseModel, Field

from truthtable.config import RAW_TRANSCRIPTS_TABLE, VECTORIZED_TRANSCRIPTS_TABLE
from truthtable.embeddings import MAX_EMBED_CHARS

logger = logging.getLogger(__name__)


class ReembedReport(BaseModel):
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    batches: int = 0
    failed_ids: List[str] = Field(default_factory=list)


def embed_with_retry(llm, texts: List[str], max_retries: int = 3, sleep: Callable[[float], None] = time.sleep) -> List[List[float]]:
    """Embed a batch of texts, backing off 1s, 2s, ... between attempts."""
    for attempt in range(max_retries):
        try:
            return llm.embed_batch(texts)
        except Exception as e:
            if attempt < max_retries - 1:
                wait = 2 ** attempt
                logger.warning(f"Embedding batch failed: {e}, retrying in {wait}s...")
                sleep(wait)
            else:
                raise
    return []


def _source_texts(store, row: Dict[str, Any]) -> Optional[Dict[str, str]]:
    raw_id = row.get("raw_transcript_id")
    raw = store.select_one(RAW_TRANSCRIPTS_TABLE, {"id": raw_id}) if raw_id else None
    if not raw or not raw.get("full_transcript"):
        return None
    texts = {"full_transcript_vector": raw["full_transcript"][:MAX_EMBED_CHARS]}
    user_messages = raw.get("user_messages") or []
    if isinstance(user_messages, list) and any(m for m in user_messages):
        texts["user_messages_vector"] = " ".join(m for m in user_messages if m)[:MAX_EMBED_CHARS]
    if row.get("content_summary"):
        texts["summary_vector"] = row["content_summary"][:MAX_EMBED_CHARS]
    return texts


def reembed_stale_transcripts(
    store,
    llm,
    batch_size: int = 20,
    delay_seconds: float = 1.0,
    max_rows: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ReembedReport:
    """
    Re-embed every vectorized row whose vector_model is not the current one.

    Args:
        store: Data store
        llm: LLM handle (its embedding_model is the target model)
        batch_size: Rows per batch
        delay_seconds: Pause between batches
        max_rows: Stop after this many rows (None for all)
        sleep: Sleep function (injectable for tests)

    Returns:
        ReembedReport with counts
    """
    model = llm.embedding_model
    report = ReembedReport()
    # Every row attempted this run; an update that matches nothing must not
    # bring the row back in the next batch
    seen: Set[str] = set()

    while max_rows is None or report.processed + report.failed + report.skipped < max_rows:
        rows = store.select_many(
            VECTORIZED_TRANSCRIPTS_TABLE,
            order_by="created_at",
            descending=False,
            limit=batch_size + len(seen),
            exclude={"vector_model": model},
        )
        rows = [r for r in rows if str(r.get("id")) not in seen][:batch_size]
        if max_rows is not None:
            remaining = max_rows - (report.processed + report.failed + report.skipped)
            rows = rows[:remaining]
        if not rows:
            break

        if report.batches:
            sleep(delay_seconds)
        report.batches += 1
        logger.info(f"Re-embedding batch {report.batches}: {len(rows)} rows -> {model}")

        for row in rows:
            row_id = str(row.get("id"))
            seen.add(row_id)
            texts = _source_texts(store, row)
            if not texts:
                logger.warning(f"No source transcript for vectorized row {row_id}, skipping")
                report.skipped += 1
                continue

            columns = list(texts)
            try:
                vectors = embed_with_retry(llm, [texts[c] for c in columns], sleep=sleep)
                update = dict(zip(columns, vectors))
                update["vector_model"] = model
                store.update(VECTORIZED_TRANSCRIPTS_TABLE, update, {"id": row.get("id")})
                report.processed += 1
            except Exception as e:
                logger.error(f"Re-embedding row {row_id} failed: {e}")
                report.failed += 1
                report.failed_ids.append(row_id)

    logger.info(
        f"Re-embedding complete: {report.processed} processed, {report.failed} failed, "
        f"{report.skipped} skipped in {report.batches} batches"
    )
    return report
