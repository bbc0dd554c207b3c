"""Shared fakes: a scripted oracle, an in-memory vector index and a constant embedder."""

from __future__ import annotations

import math
from typing import Any, Callable, Dict, List, Optional

import pytest

from projectqa.ai_workflow.agent_orchestrator import RetrievalAgent
from projectqa.ai_workflow.utils.openai_utils import OracleClient
from projectqa.retrieval.vector_ranker import VectorRanker
from projectqa.tabular.store import TabularRepository
from projectqa.vectorstores.base import SearchHit

ROLE_MARKERS = {
    "planner": "You are the Source Planner",
    "sql": "You are the SQL Writer",
    "review": "You are the Reviewer",
    "synthesis": "You are the Synthesizer",
}

EMPLOYEES = [
    {"name": "Ann", "dept": "eng"},
    {"name": "Bob", "dept": "sales"},
    {"name": "Cid", "dept": "Eng"},
]


def word_count(text: str) -> int:
    return len(text.split())


class ScriptedOracle:
    """Answers by prompt role.

    A response is a string, an exception to raise, a callable (system, user) -> str,
    or a list consumed in order (the last item repeats).
    """

    def __init__(self, **responses: Any):
        self.responses: Dict[str, Any] = {k: (list(v) if isinstance(v, list) else v) for k, v in responses.items()}
        self.calls: List[tuple] = []

    @staticmethod
    def role_of(system_prompt: str) -> str:
        for role, marker in ROLE_MARKERS.items():
            if marker in system_prompt:
                return role
        return "unknown"

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        role = self.role_of(system_prompt)
        self.calls.append((role, system_prompt, user_prompt))

        response = self.responses.get(role, "")
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(system_prompt, user_prompt)
        return response

    def calls_for(self, role: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == role]


class InMemoryVectorIndex:
    """Points with a fixed "score" key are returned with that score, others by cosine similarity."""

    def __init__(self):
        self.collections: Dict[str, List[Dict[str, Any]]] = {}
        self.fail = False
        self.searches = 0

    def add(self, project_id: str, text: str, score: float, tokens: Optional[int] = None) -> None:
        payload: Dict[str, Any] = {"text": text}
        if tokens is not None:
            payload["tokens"] = tokens
        point = {"id": f"{project_id}-{len(self.collections.get(project_id, []))}", "score": score, "payload": payload}
        self.collections.setdefault(project_id, []).append(point)

    def ensure_collection(self, project_id: str) -> None:
        self.collections.setdefault(project_id, [])

    def upsert(self, project_id: str, points: List[Dict[str, Any]]) -> None:
        self.collections.setdefault(project_id, []).extend(points)

    def search(self, project_id: str, vector: List[float], limit: int, score_threshold: float) -> List[SearchHit]:
        self.searches += 1
        if self.fail:
            raise ConnectionError("vector index down")
        hits = []
        for point in self.collections.get(project_id, []):
            score = point["score"] if "score" in point else _cosine(vector, point["vector"])
            if score >= score_threshold:
                hits.append(SearchHit(id=point["id"], score=score, payload=point["payload"]))
        return sorted(hits, key=lambda h: h.score, reverse=True)[:limit]

    def delete_collection(self, project_id: str) -> bool:
        if self.fail:
            raise ConnectionError("vector index down")
        return self.collections.pop(project_id, None) is not None


def _cosine(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class ConstantEmbedder:
    def __init__(self, vector: Optional[List[float]] = None):
        self.vector = vector or [1.0, 0.0, 0.0]
        self.calls: List[List[str]] = []
        self.fail = False

    def __call__(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise ConnectionError("embedding service down")
        return [list(self.vector) for _ in texts]


@pytest.fixture
def repository(tmp_path) -> TabularRepository:
    return TabularRepository(data_dir=str(tmp_path))


@pytest.fixture
def employees_repository(repository) -> TabularRepository:
    repository.get_store("p1").import_table("employees", EMPLOYEES)
    return repository


@pytest.fixture
def vector_index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture
def embedder() -> ConstantEmbedder:
    return ConstantEmbedder()


@pytest.fixture
def make_agent(vector_index, embedder) -> Callable[..., RetrievalAgent]:
    def _make(oracle: ScriptedOracle, repository: TabularRepository, **kwargs) -> RetrievalAgent:
        ranker = VectorRanker(vector_index, embedder, token_counter=word_count)
        return RetrievalAgent(repository, ranker, OracleClient(oracle, timeout_seconds=5), **kwargs)
    return _make
