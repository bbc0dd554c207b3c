# projectqa/embeddings/providers/openai_embedder.py
from typing import List, Optional

from openai import OpenAI

from projectqa.constants import DEFAULT_EMBEDDING_MODEL

_client: Optional[OpenAI] = None


def _get_client() -> OpenAI:
    # Created on first use so importing the package needs no API key
    global _client
    if _client is None:
        _client = OpenAI()
    return _client


def embed_texts_openai(texts: List[str], model: str = DEFAULT_EMBEDDING_MODEL) -> List[List[float]]:
    if not texts:
        return []
    # OpenAI accepts a list of strings; response.data is aligned to inputs
    resp = _get_client().embeddings.create(model=model, input=texts)
    return [d.embedding for d in resp.data]
