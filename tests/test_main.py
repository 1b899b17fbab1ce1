import pytest

from github_issue_notebooks.errors import ConfigurationError
from github_issue_notebooks.main import get_int_setting, mcp


def test_get_int_setting_default(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("PAGE_SIZE", raising=False)

    assert get_int_setting("PAGE_SIZE", default=100, minimum=1, maximum=100) == 100


def test_get_int_setting_is_capped(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("MAX_RESULTS", "5000")

    assert get_int_setting("MAX_RESULTS", default=1000, minimum=1, maximum=1000) == 1000


def test_get_int_setting_rejects_garbage(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PAGE_SIZE", "lots")

    with pytest.raises(ConfigurationError, match="must be an integer"):
        get_int_setting("PAGE_SIZE", default=100, minimum=1, maximum=100)


def test_get_int_setting_rejects_too_small(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PAGE_SIZE", "0")

    with pytest.raises(ConfigurationError, match="at least 1"):
        get_int_setting("PAGE_SIZE", default=100, minimum=1, maximum=100)


async def test_tools_are_registered():
    tools = await mcp.get_tools()

    assert sorted(tools) == ["check_query", "compile_query", "run_notebook", "run_query"]
