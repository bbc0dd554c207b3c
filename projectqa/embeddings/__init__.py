# projectqa/embeddings/__init__.py
from typing import List, cast

from projectqa.constants import EMBED_PROVIDER
from .batching import embed_in_batches, iter_token_batches
from .providers.base import EmbeddingsProvider


def get_embedder() -> EmbeddingsProvider:
    provider = EMBED_PROVIDER.lower()
    if provider == "openai":
        from .providers.openai_embedder import embed_texts_openai
        return cast(EmbeddingsProvider, lambda texts: embed_texts_openai(texts))
    elif provider == "hf":
        # sentence-transformers is an optional extra
        from .providers.hf_embedder import embed_texts_hf
        return cast(EmbeddingsProvider, lambda texts: embed_texts_hf(texts))
    else:
        raise ValueError(f"Unknown EMBED_PROVIDER={provider}")


def embed_text(text: str, embedder: EmbeddingsProvider) -> List[float]:
    return embedder([text])[0]


__all__ = ["EmbeddingsProvider", "embed_in_batches", "embed_text", "get_embedder", "iter_token_batches"]
