# projectqa/embeddings/providers/hf_embedder.py
from functools import lru_cache
from typing import List

from sentence_transformers import SentenceTransformer

from projectqa.constants import HF_EMBEDDING_MODEL


@lru_cache(maxsize=2)
def _load_model(model_name: str) -> SentenceTransformer:
    return SentenceTransformer(model_name)


def embed_texts_hf(texts: List[str], model_name: str = HF_EMBEDDING_MODEL) -> List[List[float]]:
    """
    Embed texts using SentenceTransformers MiniLM (local model).
    Returns list of embeddings (384-dim each).
    """
    if not texts:
        return []
    embs = _load_model(model_name).encode(texts, batch_size=32, show_progress_bar=False)
    return [emb.tolist() for emb in embs]
