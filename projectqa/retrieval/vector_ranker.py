# ------------------------------
# Module: vector_ranker.py
# Description: Semantic retrieval of document chunks under a token budget
# ------------------------------

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from projectqa.cache import TTLCache
from projectqa.constants import VECTOR_SCORE_THRESHOLD, VECTOR_SEARCH_LIMIT, VECTOR_TOKEN_BUDGET
from projectqa.embeddings.providers.base import EmbeddingsProvider
from projectqa.errors import SourceUnavailableError
from projectqa.utils import Timer, get_token_count, preview
from projectqa.vectorstores.base import SearchHit, VectorIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Chunk:
    text: str
    score: float
    tokens: int


def format_chunks(chunks: List[Chunk]) -> str:
    return "\n\n".join(chunk.text for chunk in chunks)


class VectorRanker:
    '''
      Embeds a question once, searches the project's collection and keeps the
      best chunks while their token sum fits the budget.
    '''

    def __init__(self,
                 index: VectorIndex,
                 embedder: EmbeddingsProvider,
                 token_budget: int = VECTOR_TOKEN_BUDGET,
                 search_limit: int = VECTOR_SEARCH_LIMIT,
                 score_threshold: float = VECTOR_SCORE_THRESHOLD,
                 token_counter: Callable[[str], int] = get_token_count,
                 cache: Optional[TTLCache] = None):
        self.index = index
        self.embedder = embedder
        self.token_budget = token_budget
        self.search_limit = search_limit
        self.score_threshold = score_threshold
        self.token_counter = token_counter
        self.cache = cache

    def _embed_query(self, query: str) -> List[float]:
        if self.cache is not None:
            cached = self.cache.get(query)
            if cached is not None:
                logger.debug(f"Embedding cache hit for '{preview(query, 50)}'")
                return cached

        try:
            vector = self.embedder([query])[0]
        except Exception as e:
            raise SourceUnavailableError(f"Embedding service unavailable: {e}") from e

        if self.cache is not None:
            self.cache.set(query, vector)
        return vector

    def _chunk_tokens(self, hit: SearchHit, text: str) -> int:
        tokens = hit.payload.get("tokens")
        if isinstance(tokens, (int, float)) and not isinstance(tokens, bool) and tokens >= 0:
            return int(tokens)
        return self.token_counter(text)

    def retrieve(self,
                 query: str,
                 project_id: str,
                 top_k: Optional[int] = None,
                 score_threshold: Optional[float] = None) -> List[Chunk]:
        """
        Retrieve the chunks relevant to a query, highest score first.

        Args:
            query: The question text
            project_id: The project whose collection is searched
            top_k: Number of candidates fetched from the index (default VECTOR_SEARCH_LIMIT)
            score_threshold: Minimum similarity score (default VECTOR_SCORE_THRESHOLD)

        Returns:
            The accepted chunks. Empty when nothing clears the threshold.

        Raises:
            SourceUnavailableError: the embedding service or the vector index failed
        """
        limit = top_k or self.search_limit
        threshold = self.score_threshold if score_threshold is None else score_threshold

        with Timer("Vector retrieval") as timer:
            vector = self._embed_query(query)

            try:
                hits = self.index.search(project_id, vector, limit, threshold)
            except Exception as e:
                raise SourceUnavailableError(f"Vector index unavailable for project {project_id}: {e}") from e

            hits = sorted((h for h in hits if h.score >= threshold), key=lambda h: h.score, reverse=True)

            chunks: List[Chunk] = []
            token_sum = 0
            for hit in hits:
                text = str(hit.payload.get("text", ""))
                tokens = self._chunk_tokens(hit, text)
                # Chunks are never split, the first one that does not fit ends the scan
                if token_sum + tokens > self.token_budget:
                    break
                chunks.append(Chunk(text=text, score=hit.score, tokens=tokens))
                token_sum += tokens

        logger.info(
            f"Retrieved {len(chunks)}/{len(hits)} chunks ({token_sum} tokens) "
            f"for project {project_id} in {timer.duration_ms:.2f}ms"
        )
        return chunks
