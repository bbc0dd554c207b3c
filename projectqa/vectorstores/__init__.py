from projectqa.vectorstores.base import SearchHit, VectorIndex, collection_name


def get_vector_index() -> VectorIndex:
    from projectqa.vectorstores.pinecone_store import PineconeStore
    return PineconeStore()


__all__ = ["SearchHit", "VectorIndex", "collection_name", "get_vector_index"]
