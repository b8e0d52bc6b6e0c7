import pytest
from click.testing import CliRunner

from challenge_py import __version__, cli as cli_module
from challenge_py.client.models import RegistrationStatus
from challenge_py.config import GlobalConfig, LocalConfig
from challenge_py.config.state import StateFile, VerificationStore
from challenge_py.session import ChallengeSession
from fakes import FakeClient, make_problem

PHONE = "+919876543210"


@pytest.fixture
def registered(monkeypatch):
    client = FakeClient()
    client.status = RegistrationStatus(
        is_registered=True, user_id=7, registration_id=70, user_name="Asha"
    )
    client.challenge.problems = [make_problem(7)]
    state = StateFile(None)
    VerificationStore(state).store(PHONE, 42)

    def make_session(challenge):
        session = ChallengeSession(client, challenge or 42, state_file=state)
        return session, GlobalConfig(phone=PHONE)

    monkeypatch.setattr(cli_module, "make_session", make_session)
    return client


def test_version():
    result = CliRunner().invoke(cli_module.cli, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_set_language_writes_local_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(cli_module.cli, ["set-language", "java", "-c", "weekly-sprint"])
    assert result.exit_code == 0

    config = LocalConfig.load(tmp_path / ".challenge_py.local")
    assert config.default_language == "java"
    assert config.challenge == "weekly-sprint"


def test_challenges_lists_visible_ones(monkeypatch):
    class ListingClient:
        def get_challenges(self):
            return [FakeClient().challenge], None

    monkeypatch.setattr(cli_module, "ChallengeClient", ListingClient)
    result = CliRunner().invoke(cli_module.cli, ["challenges"])
    assert result.exit_code == 0
    assert "weekly-sprint" in result.output


def test_run_prints_sample_results(registered, tmp_path):
    source = tmp_path / "solution.py"
    source.write_text("def add(a, b):\n    return a + b\n", encoding="utf-8")

    result = CliRunner().invoke(cli_module.cli, ["run", "42", "7", str(source)])
    assert result.exit_code == 0
    assert "Passed 2/2" in result.output
    assert registered.runs == [("7", "python", source.read_text(encoding="utf-8"))]


def test_submit_refuses_solved_problem_without_unlock(registered, tmp_path):
    registered.challenge.problems = [make_problem(7, solved=True)]
    source = tmp_path / "solution.py"
    source.write_text("def add(a, b):\n    return b + a\n", encoding="utf-8")

    result = CliRunner().invoke(cli_module.cli, ["submit", "42", "7", str(source)])
    assert "Use --unlock" in result.output
    assert registered.submissions == []

    result = CliRunner().invoke(cli_module.cli, ["submit", "42", "7", str(source), "--unlock"])
    assert "Accepted" in result.output
    assert registered.submissions[0][1] is None


def test_problems_requires_verification(monkeypatch):
    client = FakeClient()

    def make_session(challenge):
        return ChallengeSession(client, 42, state_file=StateFile(None)), GlobalConfig()

    monkeypatch.setattr(cli_module, "make_session", make_session)
    result = CliRunner().invoke(cli_module.cli, ["problems", "42"])
    assert result.exit_code == 0
    assert "challenge_py verify" in result.output


def test_mcq_saves_each_answer_then_submits(registered):
    result = CliRunner().invoke(cli_module.cli, ["mcq", "42"], input="0\nParis\ny\n")
    assert result.exit_code == 0
    assert "Answers submitted." in result.output

    option = {"question_id": 1, "selected_option_id": 11, "text_answer": None}
    text = {"question_id": 2, "selected_option_id": None, "text_answer": "Paris"}
    assert registered.mcq_calls == [[option], [text], [option, text]]
