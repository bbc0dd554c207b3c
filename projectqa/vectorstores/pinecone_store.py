import logging
from typing import Any, Dict, List, Optional

from pinecone import Pinecone, ServerlessSpec, exceptions

from projectqa.constants import (
    PINECONE_API_KEY,
    PINECONE_CLOUD,
    PINECONE_INDEX_NAME,
    PINECONE_REGION,
    VECTOR_METRIC,
    VECTOR_SIZE,
)
from projectqa.vectorstores.base import SearchHit, collection_name

logger = logging.getLogger(__name__)


class PineconeStore:
    '''
      One Pinecone index shared by all projects, one namespace per project.
    '''

    def __init__(self,
                 api_key: str = PINECONE_API_KEY,
                 index_name: str = PINECONE_INDEX_NAME,
                 dimension: int = VECTOR_SIZE,
                 metric: str = VECTOR_METRIC,
                 client: Optional[Pinecone] = None):
        self.index_name = index_name
        self.dimension = dimension
        self.metric = metric
        self._api_key = api_key
        self._client = client
        self._index = None

    # :::::: Setup :::::: #

    @property
    def client(self) -> Pinecone:
        if self._client is None:
            self._client = Pinecone(api_key=self._api_key)
        return self._client

    @property
    def index(self):
        if self._index is None:
            self._index = self.client.Index(name=self.index_name)
        return self._index

    def ensure_collection(self, project_id: str) -> None:
        '''
          Create the shared index when missing. Namespaces are created on first upsert.
        '''
        if self.index_name in self.client.list_indexes().names():
            return
        logger.info(f"Creating Pinecone index '{self.index_name}' (dim={self.dimension}, metric={self.metric})")
        self.client.create_index(
            name=self.index_name,
            dimension=self.dimension,
            metric=self.metric,
            spec=ServerlessSpec(cloud=PINECONE_CLOUD, region=PINECONE_REGION),
        )

    # :::::: Functions :::::: #

    def upsert(self, project_id: str, points: List[Dict[str, Any]]) -> None:
        namespace = collection_name(project_id)
        try:
            self.index.upsert(
                vectors=[
                    {"id": p["id"], "values": p["vector"], "metadata": p.get("payload", {})}
                    for p in points
                ],
                namespace=namespace,
            )
            logger.info(f"Upserted {len(points)} points into '{self.index_name}' in namespace '{namespace}'")
        except Exception:
            logger.exception(f"[upsert] Failed to upsert {len(points)} points into namespace '{namespace}'")
            raise

    def search(self, project_id: str, vector: List[float], limit: int, score_threshold: float) -> List[SearchHit]:
        namespace = collection_name(project_id)
        try:
            resp = self.index.query(
                vector=vector,
                top_k=limit,
                namespace=namespace,
                include_metadata=True,
            )
        except Exception:
            logger.exception(f"[search] Failed to search namespace '{namespace}'")
            raise

        hits = [
            SearchHit(id=str(m.id), score=float(m.score), payload=dict(m.metadata or {}))
            for m in resp.matches
            if m.score is not None and m.score >= score_threshold
        ]
        logger.info(f"Search in '{namespace}' returned {len(resp.matches)} matches, {len(hits)} above {score_threshold}")
        return hits

    def delete_collection(self, project_id: str) -> bool:
        namespace = collection_name(project_id)
        try:
            self.index.delete(delete_all=True, namespace=namespace)
        except exceptions.NotFoundException:
            logger.warning(f"Namespace '{namespace}' not found, nothing to delete")
            return False
        logger.info(f"Deleted all records from '{self.index_name}' in namespace '{namespace}'")
        return True
