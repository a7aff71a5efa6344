import pytest

from stepflow.errors import PluginActionError, PluginNotFoundError
from stepflow.plugins import InMemoryPluginHost


@pytest.fixture
def host():
    host = InMemoryPluginHost()

    @host.action("git", "branch")
    def branch(repo: str = ".") -> str:
        return f"main ({repo})"

    @host.action("k8s", "pods")
    async def pods(namespace: str) -> list:
        return [f"{namespace}/web", f"{namespace}/db"]

    host.register("misc", "noop", lambda: None)
    host.register("misc", "fail", lambda: 1 / 0)
    return host


def test_actions_are_listed(host):
    assert host.actions() == ["git.branch", "k8s.pods", "misc.fail", "misc.noop"]


@pytest.mark.asyncio
async def test_results_are_rendered_as_text(host):
    assert await host.run_action("git", "branch", {"repo": "/src"}) == "main (/src)"
    assert await host.run_action("k8s", "pods", {"namespace": "prod"}) == '["prod/web", "prod/db"]'
    assert await host.run_action("misc", "noop", {}) == ""


@pytest.mark.asyncio
async def test_unknown_action(host):
    with pytest.raises(PluginNotFoundError, match="git.push"):
        await host.run_action("git", "push", {})


@pytest.mark.asyncio
async def test_action_errors_are_wrapped(host):
    with pytest.raises(PluginActionError, match="division by zero"):
        await host.run_action("misc", "fail", {})
