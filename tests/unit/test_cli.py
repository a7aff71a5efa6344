import pytest
from typer.testing import CliRunner

from stepflow.cli import app
from stepflow.models import Workflow

cli = CliRunner()

GREETING = """
id: greet
name: Greeting
tags: [system]
arguments:
  - name: name
    default_value: world
steps:
  - id: say
    name: Say hello
    command: echo hello {{name}}
    output_variable: greeting
"""

FAILING = """
id: fails
name: Failing
steps:
  - name: ok
    command: echo fine
  - name: broken
    command: exit 4
"""


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setenv("STEPFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("STEPFLOW_DATABASE_URL", f"sqlite://{tmp_path / 'runs.db'}")
    monkeypatch.delenv("STEPFLOW_TRANSPORT", raising=False)


@pytest.fixture
def flows(tmp_path):
    directory = tmp_path / "flows"
    directory.mkdir()
    (directory / "greet.yaml").write_text(GREETING)
    (directory / "fails.yaml").write_text(FAILING)
    return directory


def run_id_from(output):
    return output.strip().splitlines()[-1].removeprefix("Run ID: ")


def test_validate(flows):
    result = cli.invoke(app, ["validate", str(flows / "greet.yaml")])

    assert result.exit_code == 0
    assert "Workflow 'Greeting' is valid (1 steps)" in result.output


def test_validate_reports_undeclared_placeholders(tmp_path):
    path = tmp_path / "loose.yaml"
    Workflow.from_dict(
        {"id": "loose", "name": "Loose", "steps": [{"name": "s", "command": "ls {{dir}}"}]}
    ).to_file(path)

    result = cli.invoke(app, ["validate", str(path)])

    assert result.exit_code == 0
    assert "Placeholders not declared as arguments: dir" in result.output


def test_validate_invalid_file(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("id: bad\nname: Bad\nshells: []\n")

    result = cli.invoke(app, ["validate", str(path)])

    assert result.exit_code == 1
    assert "Invalid workflow" in result.output


def test_run_and_inspect_history(flows):
    result = cli.invoke(app, ["run", str(flows / "greet.yaml"), "--arg", "name=stepflow"])

    assert result.exit_code == 0, result.output
    assert "hello stepflow" in result.output
    assert "Workflow 'Greeting' succeeded" in result.output
    run_id = run_id_from(result.output)

    listing = cli.invoke(app, ["runs", "list"])
    assert f"{run_id}\tGreeting\tsucceeded" in listing.output

    shown = cli.invoke(app, ["runs", "show", run_id])
    assert shown.exit_code == 0
    assert "- [0] Say hello: completed" in shown.output
    assert '"greeting": "hello stepflow\\n"' in shown.output


def test_failed_run_exits_non_zero(flows):
    result = cli.invoke(app, ["run", str(flows / "fails.yaml")])

    assert result.exit_code == 1
    assert "[1] broken: failed" in result.output
    assert "exit code: 4" in result.output

    shown = cli.invoke(app, ["runs", "show", run_id_from(result.output)])
    assert "failed" in shown.output


def test_run_rejects_malformed_arguments(flows):
    result = cli.invoke(app, ["run", str(flows / "greet.yaml"), "--arg", "novalue"])
    assert result.exit_code != 0


def test_unknown_run():
    result = cli.invoke(app, ["runs", "show", "missing"])

    assert result.exit_code == 1
    assert "Run not found" in result.output


def test_runs_list_empty():
    result = cli.invoke(app, ["runs", "list"])
    assert "No runs found" in result.output
    assert "No database_url configured" not in result.output


def test_runs_commands_warn_without_database_url(monkeypatch):
    monkeypatch.delenv("STEPFLOW_DATABASE_URL")

    listing = cli.invoke(app, ["runs", "list"])
    assert "No database_url configured" in listing.output
    assert "No runs found" in listing.output

    show = cli.invoke(app, ["runs", "show", "missing"])
    assert show.exit_code == 1
    assert "No database_url configured" in show.output


def test_workflows_list_and_search(flows):
    listing = cli.invoke(app, ["workflows", "list", "--dir", str(flows)])

    assert listing.exit_code == 0
    assert listing.output.splitlines() == ["fails\tFailing\tOther", "greet\tGreeting\tSystem"]

    search = cli.invoke(app, ["workflows", "search", "hello", "--dir", str(flows)])
    assert search.output.splitlines() == ["3\tgreet\tGreeting"]

    nothing = cli.invoke(app, ["workflows", "search", "kubectl", "--dir", str(flows)])
    assert "No matching workflows" in nothing.output


def test_workflows_missing_directory(tmp_path):
    result = cli.invoke(app, ["workflows", "list", "--dir", str(tmp_path / "nowhere")])

    assert result.exit_code == 1
    assert "Specified path does not exist" in result.output


def test_debug_session_with_breakpoint(flows, tmp_path):
    path = tmp_path / "two.yaml"
    Workflow.from_dict(
        {
            "id": "two",
            "name": "Two steps",
            "steps": [
                {"name": "first", "command": "echo one"},
                {"name": "second", "command": "echo two"},
            ],
        }
    ).to_file(path)

    result = cli.invoke(app, ["debug", str(path), "--break", "1"], input="c\nh\nc\nq\n")

    assert result.exit_code == 0, result.output
    assert "Suspended before step 1" in result.output
    assert "[0] first: completed" in result.output
    assert "Execution completed" in result.output
    assert "State: completed" in result.output
