"""Tests for the SQL the repository issues, against a recording session."""

from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql

from carousel_studio.services.repository import CarouselRepository


class RecordingSession:
    def __init__(self, rowcount: int) -> None:
        self.rowcount = rowcount
        self.statements = []
        self.commits = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, statement):
        self.statements.append(statement)
        return SimpleNamespace(rowcount=self.rowcount)

    async def commit(self):
        self.commits += 1


def _repository(session: RecordingSession) -> CarouselRepository:
    return CarouselRepository(lambda: session)


def _compiled(statement):
    compiled = statement.compile(dialect=postgresql.dialect())
    return " ".join(str(compiled).split()), compiled.params


# ─── Single-flight claim ─────────────────────────────────────────────────────


class TestTryStartGeneration:
    async def test_claim_is_conditional_update(self):
        session = RecordingSession(rowcount=1)
        carousel_id, owner_id = uuid4(), uuid4()

        claimed = await _repository(session).try_start_generation(carousel_id, owner_id, {"stage": "text"})

        assert claimed is True
        assert session.commits == 1
        sql, params = _compiled(session.statements[0])
        assert sql.startswith("UPDATE carousels SET")
        where = sql.split(" WHERE ", 1)[1]
        assert "carousels.id = " in where
        assert "carousels.owner_id = " in where
        assert "carousels.generation_status != " in where
        assert list(params.values()).count("running") == 2
        assert carousel_id in params.values()
        assert owner_id in params.values()
        assert {"stage": "text"} in params.values()

    async def test_no_row_means_already_running(self):
        session = RecordingSession(rowcount=0)
        claimed = await _repository(session).try_start_generation(uuid4(), uuid4(), {})
        assert claimed is False

    @pytest.mark.parametrize("rowcount", [0, 2])
    async def test_only_exactly_one_row_claims(self, rowcount):
        session = RecordingSession(rowcount=rowcount)
        assert await _repository(session).try_start_generation(uuid4(), uuid4(), {}) is False

    async def test_claim_clears_previous_error(self):
        session = RecordingSession(rowcount=1)
        await _repository(session).try_start_generation(uuid4(), uuid4(), {})
        sql, params = _compiled(session.statements[0])
        assert "generation_error=" in sql.split(" WHERE ", 1)[0]
        assert params.get("generation_error") is None
