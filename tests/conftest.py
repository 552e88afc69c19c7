"""Shared test fixtures and fakes.

No test talks to a live model or to AWS: completions come from a scripted
client, embeddings from a token-hashing fake, chunks from the in-memory store
and records from the in-memory record store.
"""

import hashlib
import json

import pytest

from storyforge.config import PipelineSettings
from storyforge.learning import LearningStore
from storyforge.models import ExpectedStory, UserStory
from storyforge.retrieval.vector_store import InMemoryChunkStore
from storyforge.runs import RunRegistry
from storyforge.similarity import tokens
from storyforge.storage import InMemoryRecordStore

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class ScriptedCompletionClient:
    """Returns queued responses in order and records every prompt pair.

    Dicts and lists are serialized to JSON; strings are returned as-is.
    """

    def __init__(self, responses: list | None = None):
        self.responses = list(responses or [])
        self.calls: list[tuple[str, str]] = []

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if not self.responses:
            raise AssertionError("ScriptedCompletionClient ran out of responses")
        response = self.responses.pop(0)
        if isinstance(response, str):
            return response
        return json.dumps(response, ensure_ascii=False)


class FakeEmbedder:
    """Bag-of-tokens hashing embedder; texts sharing tokens get similar vectors."""

    def __init__(self, dimension: int = 32):
        self.dimension = dimension
        self.calls = 0

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        vectors = []
        for text in texts:
            vector = [0.0] * self.dimension
            for token in tokens(text):
                bucket = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % self.dimension
                vector[bucket] += 1.0
            vectors.append(vector)
        return vectors


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def build_story_dict(
    story_id: str = "US-001",
    role: str = "Administrador",
    title: str = "Registrar cliente nuevo",
    want: str = "registrar un cliente nuevo con sus datos fiscales",
    so_that: str = "pueda facturarle sus compras",
    criteria: list[str] | None = None,
    notes: list[dict] | None = None,
    traceability: list | None = None,
) -> dict:
    return {
        "storyId": story_id,
        "epic": "Clientes",
        "title": title,
        "role": role,
        "want": want,
        "soThat": so_that,
        "notesHu": notes
        if notes is not None
        else [
            {"section": "Reglas de negocio", "bullets": ["El RFC es obligatorio"]},
            {"section": "Casos borde", "bullets": ["Cliente duplicado por RFC"]},
        ],
        "acceptanceCriteria": criteria
        if criteria is not None
        else [
            "DADO un administrador autenticado CUANDO registra un cliente valido ENTONCES se guarda",
            "DADO un RFC duplicado CUANDO registra el cliente ENTONCES se muestra un error",
            "DADO un campo vacio CUANDO envia el formulario ENTONCES no se guarda el cliente",
            "DADO un cliente guardado CUANDO consulta la lista ENTONCES aparece el cliente",
            "DADO un cliente guardado CUANDO consulta el detalle ENTONCES ve sus datos fiscales",
        ],
        "traceability": traceability if traceability is not None else [{"chunkId": "c_1", "confidence": 0.9}],
    }


@pytest.fixture
def story_dict():
    """Factory for camelCase story dicts."""
    return build_story_dict


@pytest.fixture
def user_story():
    """Factory for validated ``UserStory`` objects."""

    def _make(**kwargs) -> UserStory:
        return UserStory.model_validate(build_story_dict(**kwargs))

    return _make


@pytest.fixture
def expected_story():
    """Factory for ``ExpectedStory`` objects."""

    def _make(**kwargs) -> ExpectedStory:
        defaults = {
            "story_id": "EXP-1",
            "title": "Registrar cliente nuevo",
            "role": "Administrador",
            "want": "registrar un cliente nuevo con sus datos fiscales",
            "so_that": "pueda facturarle sus compras",
            "acceptance_criteria": ["DADO algo CUANDO pasa ENTONCES resulta"],
            "notes_hu": "- Reglas de negocio\n  - El RFC es obligatorio",
        }
        defaults.update(kwargs)
        return ExpectedStory(**defaults)

    return _make


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def records():
    return InMemoryRecordStore()


@pytest.fixture
def learning(records):
    return LearningStore(records)


@pytest.fixture
def registry(records):
    return RunRegistry(records)


@pytest.fixture
def chunk_store():
    return InMemoryChunkStore()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def settings(tmp_path):
    """Settings with every directory under ``tmp_path``."""
    return PipelineSettings(
        data_dir=tmp_path / "data",
        output_dir=tmp_path / "outputs",
        context_dir=tmp_path / "context",
    )


@pytest.fixture
def scripted_client():
    """Factory: ``scripted_client([response, ...])``."""
    return ScriptedCompletionClient
