# ------------------------------
# Module: indexer.py
# Description: Write a project's document chunks into its vector collection
# ------------------------------

import logging
import uuid
from typing import Callable, List

from projectqa.constants import MAX_POINTS_PER_UPSERT, MAX_TOKENS_PER_EMBED_BATCH
from projectqa.embeddings.batching import embed_in_batches
from projectqa.embeddings.providers.base import EmbeddingsProvider
from projectqa.utils import Timer, get_token_count
from projectqa.vectorstores.base import VectorIndex

logger = logging.getLogger(__name__)


def index_chunks(project_id: str,
                 texts: List[str],
                 embedder: EmbeddingsProvider,
                 index: VectorIndex,
                 token_counter: Callable[[str], int] = get_token_count,
                 max_tokens_per_batch: int = MAX_TOKENS_PER_EMBED_BATCH,
                 max_points_per_upsert: int = MAX_POINTS_PER_UPSERT) -> int:
    '''
        Embed and upsert the chunks of a project.

        Args:
            project_id: The project owning the chunks
            texts: The chunk texts, already split by the ingestion pipeline
            embedder: The embeddings provider
            index: The vector index

        Returns:
            The number of points written
    '''
    texts = [t for t in texts if t and t.strip()]
    if not texts:
        logger.info(f"No chunks to index for project {project_id}")
        return 0

    with Timer("Chunk indexing") as timer:
        index.ensure_collection(project_id)
        vectors = embed_in_batches(texts, embedder, max_tokens_per_batch, token_counter)

        points = [
            {
                "id": str(uuid.uuid4()),
                "vector": vector,
                "payload": {"text": text, "chunk_index": i, "tokens": token_counter(text)},
            }
            for i, (text, vector) in enumerate(zip(texts, vectors))
        ]

        for start in range(0, len(points), max_points_per_upsert):
            index.upsert(project_id, points[start:start + max_points_per_upsert])

    logger.info(f"Indexed {len(points)} chunks for project {project_id} in {timer.duration_ms:.2f}ms")
    return len(points)


def delete_project_index(project_id: str, index: VectorIndex) -> bool:
    '''
        Drop the project's collection. Failures are logged and reported as False.
    '''
    try:
        return bool(index.delete_collection(project_id))
    except Exception as e:
        logger.error(f"Failed to delete vector collection of project {project_id}: {e}", exc_info=True)
        return False
