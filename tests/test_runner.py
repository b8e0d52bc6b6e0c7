import asyncio
import threading

import pytest

from challenge_py.client.errors import ApiError
from challenge_py.session.drafts import DraftSyncEngine
from challenge_py.session.runner import RunSubmitOrchestrator
from fakes import make_problem, runner_payload

CODE = "def add(a, b):\n    return a + b\n"


@pytest.fixture
def drafts(client):
    return DraftSyncEngine(client, 42, 7, save_delay=0.05)


@pytest.fixture
def runner(client, drafts):
    return RunSubmitOrchestrator(client, 42, 7, 70, drafts=drafts)


def test_run_reports_sample_results(client, runner):
    client.run_response = {"success": True, "data": runner_payload(passed=1, total=2)}
    result = asyncio.run(runner.run(make_problem(), CODE, "python"))

    assert result.summary.passed == 1
    assert result.summary.tests_executed == 2
    assert [t.status for t in result.tests] == ["AC", "WA"]
    assert runner.run_result is result
    assert runner.submission_result is None
    assert client.runs == [("7", "python", CODE)]


@pytest.mark.parametrize(
    "response, message",
    [
        ({"success": False, "message": "Runner offline"}, "Runner offline"),
        ({"success": True, "data": None}, "Sample run failed"),
        ({"success": True, "data": {"status": False, "message": "Compile error"}}, "Compile error"),
        ({"success": True, "data": {"status": True}}, "Sample run failed"),
    ],
)
def test_run_failures_are_normalized(client, runner, response, message):
    client.run_response = response
    assert asyncio.run(runner.run(make_problem(), CODE, "python")) is None
    assert runner.error == message
    assert runner.run_result is None


def test_empty_code_is_not_sent(client, runner):
    assert asyncio.run(runner.run(make_problem(), "   ", "python")) is None
    assert runner.error == "Please write some code before running."
    assert asyncio.run(runner.submit(make_problem(), "", "python")) is None
    assert runner.error == "Please write some code before submitting."
    assert client.runs == [] and client.submissions == []


def test_only_one_result_is_shown(client, runner):
    problem = make_problem()
    client.submit_response = {"success": True, "data": {"execution_result": {"verdict": "WA"}}}

    asyncio.run(runner.run(problem, CODE, "python"))
    assert runner.run_result is not None

    submission = asyncio.run(runner.submit(problem, CODE, "python", access_code="ABC123"))
    assert submission.verdict == "WA"
    assert runner.run_result is None
    assert runner.submission_result is submission
    assert client.submissions == [("7", "ABC123", "python", CODE)]

    runner.clear()
    assert runner.run_result is None and runner.submission_result is None


def test_accepted_submission_locks_problem(client, drafts, runner):
    problem = make_problem()

    async def scenario():
        await drafts.select(problem, "python")
        drafts.edit(CODE)
        result = await runner.submit(problem, CODE, "python")
        again = await runner.run(problem, CODE + "# tweak\n", "python")
        return result, again

    result, again = asyncio.run(scenario())
    assert result.accepted
    assert result.points_earned == 100
    assert problem.is_solved
    assert drafts.locked
    assert again is None
    assert runner.error == "This problem is solved. Enter edit mode to change it."
    assert client.runs == []


def test_accepted_without_drafts_marks_problem(client):
    runner = RunSubmitOrchestrator(client, 42, 7, 70)
    problem = make_problem()
    asyncio.run(runner.submit(problem, CODE, "java"))
    assert problem.is_solved
    assert problem.user_submission.language == "java"
    assert runner.is_locked(problem)


def test_unsuccessful_submission(client, runner):
    client.submit_response = {"success": False, "message": "Challenge is not active"}
    assert asyncio.run(runner.submit(make_problem(), CODE, "python")) is None
    assert runner.error == "Challenge is not active"


def test_transport_error_sets_message(client, runner):
    def fail(*args):
        raise ApiError("Gateway timeout", 504)

    client.run_sample = fail
    assert asyncio.run(runner.run(make_problem(), CODE, "python")) is None
    assert runner.error == "Gateway timeout"
    assert not runner.is_busy(make_problem())


def test_result_for_previous_problem_is_discarded(client, runner):
    first, second = make_problem(7), make_problem(8)
    client.run_gates["7"] = threading.Event()
    client.run_response = {"success": True, "data": runner_payload()}

    async def scenario():
        slow = asyncio.ensure_future(runner.run(first, CODE, "python"))
        await asyncio.sleep(0.05)
        assert runner.is_busy(first)
        fast = await runner.run(second, CODE, "python")
        client.run_gates["7"].set()
        return await slow, fast

    slow, fast = asyncio.run(scenario())
    assert slow is None
    assert runner.run_result is fast
    assert not runner.is_busy(first)


def test_clear_discards_in_flight_result(client, runner):
    problem = make_problem()
    client.run_gates["7"] = threading.Event()

    async def scenario():
        pending = asyncio.ensure_future(runner.run(problem, CODE, "python"))
        await asyncio.sleep(0.05)
        again = await runner.run(problem, CODE, "python")
        runner.clear()
        client.run_gates["7"].set()
        return await pending, again

    result, again = asyncio.run(scenario())
    assert result is None
    assert again is None
    assert runner.error is None
    assert runner.run_result is None


def test_frozen_runner_rejects_calls(client, runner):
    runner.freeze()
    assert asyncio.run(runner.submit(make_problem(), CODE, "python")) is None
    assert runner.error == "The challenge has ended."
    assert client.submissions == []


def test_stale_accepted_submission_still_locks_problem(client, drafts, runner):
    problem = make_problem()
    client.submit_gate = threading.Event()

    async def scenario():
        await drafts.select(problem, "python")
        drafts.edit(CODE)
        pending = asyncio.ensure_future(runner.submit(problem, CODE, "python"))
        await asyncio.sleep(0.05)
        runner.clear()
        client.submit_gate.set()
        return await pending

    assert asyncio.run(scenario()) is None
    assert runner.submission_result is None
    assert runner.error is None
    assert problem.is_solved
    assert problem.user_submission.source_code == CODE
    assert drafts.locked
