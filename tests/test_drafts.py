import asyncio
import threading

import pytest

from challenge_py.client.errors import ApiError
from challenge_py.client.models import Draft
from challenge_py.session.drafts import (
    DraftState,
    DraftSyncEngine,
    should_persist,
    template_for,
)
from fakes import make_problem

DELAY = 0.05
SOLUTION = "def add(a, b):\n    return a + b\n"


@pytest.fixture
def engine(client):
    return DraftSyncEngine(client, 42, 7, save_delay=DELAY)


@pytest.fixture
def problem():
    return make_problem()


def test_should_persist():
    template = "def add(a, b):\n    pass\n"
    assert not should_persist("", template)
    assert not should_persist("  \n", template)
    assert not should_persist("def add(a, b):\r\n    pass", template)
    assert should_persist(SOLUTION, template)
    assert should_persist(SOLUTION, "")


def test_template_loaded_when_no_draft(client, engine, problem):
    code = asyncio.run(engine.select(problem, "python"))
    assert code == template_for(problem, "python")
    assert engine.state() is DraftState.TEMPLATE_LOADED


def test_backend_draft_is_loaded(client, engine, problem):
    client.drafts[("7", "python")] = Draft(language="python", source_code=SOLUTION)
    assert asyncio.run(engine.select(problem, "python")) == SOLUTION
    assert engine.state() is DraftState.DRAFT_LOADED


def test_backend_draft_equal_to_template_counts_as_template(client, engine, problem):
    template = template_for(problem, "python")
    client.drafts[("7", "python")] = Draft(language="python", source_code=template + "\n")
    asyncio.run(engine.select(problem, "python"))
    assert engine.state() is DraftState.TEMPLATE_LOADED


def test_draft_fetch_failure_falls_back_to_template(client, engine, problem):
    client.draft_error = ApiError("Not found", 404)
    assert asyncio.run(engine.select(problem, "python")) == template_for(problem, "python")


def test_rapid_edits_produce_one_save_of_the_last_buffer(client, engine, problem):
    async def scenario():
        await engine.select(problem, "python")
        engine.edit("def add(a, b):\n    return a")
        await asyncio.sleep(DELAY / 3)
        engine.edit("def add(a, b):\n    return a +")
        await asyncio.sleep(DELAY / 3)
        engine.edit(SOLUTION)
        assert engine.state() is DraftState.SAVE_PENDING
        await asyncio.sleep(DELAY * 4)

    asyncio.run(scenario())
    assert client.saved == [("7", "python", SOLUTION)]
    assert engine.state() is DraftState.SAVED


def test_template_and_empty_buffers_are_never_saved(client, engine, problem):
    async def scenario():
        await engine.select(problem, "python")
        engine.edit("")
        await engine.flush()
        engine.edit(template_for(problem, "python"))
        await engine.flush()

    asyncio.run(scenario())
    assert client.saved == []


def test_unchanged_buffer_is_saved_once(client, engine, problem):
    async def scenario():
        await engine.select(problem, "python")
        assert await engine.save(problem, "python", SOLUTION)
        assert not await engine.save(problem, "python", SOLUTION + "\n")

    asyncio.run(scenario())
    assert len(client.saved) == 1


def test_language_switch_saves_and_restores_buffer(client, engine, problem):
    async def scenario():
        await engine.select(problem, "python")
        engine.edit(SOLUTION)
        java = await engine.switch_language("java")
        assert java == template_for(problem, "java")
        assert engine.state() is DraftState.TEMPLATE_LOADED
        return await engine.switch_language("python")

    assert asyncio.run(scenario()) == SOLUTION
    assert client.saved == [("7", "python", SOLUTION)]
    assert engine.state() is DraftState.DRAFT_LOADED


def test_problem_switch_saves_current_buffer(client, engine, problem):
    other = make_problem(8)

    async def scenario():
        await engine.select(problem, "python")
        engine.edit(SOLUTION)
        await engine.switch_problem(other)

    asyncio.run(scenario())
    assert client.saved == [("7", "python", SOLUTION)]
    assert engine.problem is other
    assert engine.language == "python"


def test_save_while_saving_is_dropped(client, engine, problem):
    client.save_gate = threading.Event()

    async def scenario():
        await engine.select(problem, "python")
        first = asyncio.ensure_future(engine.save(problem, "python", SOLUTION))
        await asyncio.sleep(0.05)
        assert engine.state() is DraftState.SAVING
        dropped = await engine.save(problem, "python", SOLUTION + "# v2\n")
        client.save_gate.set()
        return await first, dropped

    assert asyncio.run(scenario()) == (True, False)
    assert client.saved == [("7", "python", SOLUTION)]


def test_save_failure_is_silent(client, engine, problem):
    client.save_error = ApiError("Server error", 500)

    async def scenario():
        await engine.select(problem, "python")
        return await engine.save(problem, "python", SOLUTION)

    assert asyncio.run(scenario()) is False
    assert engine.state() is DraftState.EDITING

    client.save_error = None
    assert asyncio.run(engine.save(problem, "python", SOLUTION))


def test_solved_problem_is_locked(client, engine):
    solved = make_problem(
        solved=True, submission={"language": "java", "source_code": "class Solution {}"}
    )

    async def scenario():
        code = await engine.select(solved, "python")
        assert not engine.edit("print(1)")
        return code

    assert asyncio.run(scenario()) == "class Solution {}"
    assert engine.language == "java"
    assert engine.state() is DraftState.LOCKED_SOLVED
    assert engine.locked


def test_edit_mode_unlocks_and_exit_relocks(client, engine):
    solved = make_problem(
        solved=True, submission={"language": "python", "source_code": SOLUTION}
    )

    async def scenario():
        await engine.select(solved, "python")
        assert engine.enter_edit_mode()
        assert engine.code == SOLUTION
        assert not engine.locked
        assert engine.edit(SOLUTION + "# faster\n")
        return await engine.exit_edit_mode()

    assert asyncio.run(scenario()) == SOLUTION
    assert engine.locked
    assert client.saved == [("7", "python", SOLUTION + "# faster\n")]


def test_mark_accepted_drops_pending_save(client, engine, problem):
    async def scenario():
        await engine.select(problem, "python")
        engine.edit(SOLUTION)
        engine.mark_accepted(problem, "python", SOLUTION)
        await asyncio.sleep(DELAY * 3)

    asyncio.run(scenario())
    assert client.saved == []
    assert problem.is_solved
    assert problem.user_submission.source_code == SOLUTION
    assert engine.state() is DraftState.LOCKED_SOLVED


def test_frozen_engine_stops_saving(client, engine, problem):
    async def scenario():
        await engine.select(problem, "python")
        engine.edit(SOLUTION)
        engine.freeze()
        await asyncio.sleep(DELAY * 3)
        assert not engine.edit(SOLUTION + "# late\n")
        assert not await engine.save(problem, "python", SOLUTION)

    asyncio.run(scenario())
    assert client.saved == []


def test_no_user_means_no_backend_calls(client, problem):
    engine = DraftSyncEngine(client, 42, None, save_delay=DELAY)
    client.drafts[("7", "python")] = Draft(language="python", source_code=SOLUTION)

    async def scenario():
        code = await engine.select(problem, "python")
        assert not await engine.save(problem, "python", SOLUTION)
        return code

    assert asyncio.run(scenario()) == template_for(problem, "python")
    assert client.saved == []
