from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol


@dataclass(frozen=True)
class SearchHit:
    id: str
    score: float
    payload: Dict[str, Any] = field(default_factory=dict)


class VectorIndex(Protocol):
    '''
      A vector collection per project.
      Points are dicts with "id", "vector" and "payload".
    '''

    def ensure_collection(self, project_id: str) -> None:
        ...

    def upsert(self, project_id: str, points: List[Dict[str, Any]]) -> None:
        ...

    def search(self, project_id: str, vector: List[float], limit: int, score_threshold: float) -> List[SearchHit]:
        ...

    def delete_collection(self, project_id: str) -> bool:
        ...


def collection_name(project_id: str) -> str:
    return f"project_{project_id}"
