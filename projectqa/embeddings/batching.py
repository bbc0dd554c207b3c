# ------------------------------
# Module: batching.py
# Description: Embed many texts without exceeding the per-request token ceiling
# ------------------------------

import logging
from typing import Callable, Iterator, List

from projectqa.constants import MAX_TOKENS_PER_EMBED_BATCH
from projectqa.embeddings.providers.base import EmbeddingsProvider
from projectqa.utils import get_token_count

logger = logging.getLogger(__name__)


def iter_token_batches(texts: List[str],
                       max_tokens_per_batch: int = MAX_TOKENS_PER_EMBED_BATCH,
                       token_counter: Callable[[str], int] = get_token_count) -> Iterator[List[str]]:
    '''
        Group texts into consecutive batches whose token sum stays under the ceiling.
        A single text above the ceiling goes alone in its batch.
    '''
    batch: List[str] = []
    batch_tokens = 0
    for text in texts:
        tokens = token_counter(text)
        if batch and batch_tokens + tokens > max_tokens_per_batch:
            yield batch
            batch, batch_tokens = [], 0
        batch.append(text)
        batch_tokens += tokens
    if batch:
        yield batch


def embed_in_batches(texts: List[str],
                     embedder: EmbeddingsProvider,
                     max_tokens_per_batch: int = MAX_TOKENS_PER_EMBED_BATCH,
                     token_counter: Callable[[str], int] = get_token_count) -> List[List[float]]:
    '''
        Embed the texts batch by batch. The vectors are aligned to the input order.
    '''
    vectors: List[List[float]] = []
    for i, batch in enumerate(iter_token_batches(texts, max_tokens_per_batch, token_counter)):
        logger.info(f"Embedding batch {i + 1} with {len(batch)} texts")
        batch_vectors = embedder(batch)
        if len(batch_vectors) != len(batch):
            raise ValueError(f"Embedder returned {len(batch_vectors)} vectors for {len(batch)} texts")
        vectors.extend(batch_vectors)
    return vectors
