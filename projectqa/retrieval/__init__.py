from projectqa.retrieval.indexer import delete_project_index, index_chunks
from projectqa.retrieval.vector_ranker import Chunk, VectorRanker, format_chunks

__all__ = ["Chunk", "VectorRanker", "delete_project_index", "format_chunks", "index_chunks"]
