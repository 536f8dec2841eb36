"""Tests for task prompt loading and model selection."""

from types import SimpleNamespace

import pytest

from app.agents import models

PROMPT_VALUES = {
    "review": dict(REPOSITORY="o/r", PR_NUMBER=7, PR_TITLE="Add retry", PR_BODY="Adds it.",
                   HEAD_SHA="abcdef1234567", DIFF="diff --git a/x b/x"),
    "label": dict(REPOSITORY="o/r", ISSUE_NUMBER=12, ISSUE_TITLE="Crash", ISSUE_BODY="It crashes.",
                  EXISTING_LABELS="(none)", AVAILABLE_LABELS="bug, docs"),
    "doc_sync": dict(REPOSITORY="o/r", CHANGE="pull request #7", DIFF="diff --git a/x b/x"),
    "release": dict(REPOSITORY="o/r", FROM_REF="v1.2.3", CURRENT_VERSION="1.2.3", BUMP="minor",
                    NEXT_VERSION="1.3.0", COMMITS="- feat: x (abc1234)", NOTES="- feat: x (abc1234)"),
}


@pytest.mark.parametrize("task", sorted(PROMPT_VALUES))
def test_every_task_prompt_renders(task):
    prompt = models.load_task_prompt(task, **PROMPT_VALUES[task])
    assert "o/r" in prompt
    assert "${" not in prompt


def test_review_prompt_carries_context():
    prompt = models.load_task_prompt("review", **PROMPT_VALUES["review"])
    assert "abcdef1234567" in prompt
    assert "diff --git a/x b/x" in prompt
    assert "submit_review" in prompt


def test_release_prompt_names_tag():
    prompt = models.load_task_prompt("release", **PROMPT_VALUES["release"])
    assert "v1.3.0" in prompt


def test_missing_value_is_an_error():
    values = dict(PROMPT_VALUES["label"])
    del values["ISSUE_BODY"]
    with pytest.raises(KeyError):
        models.load_task_prompt("label", **values)


def test_unknown_task():
    with pytest.raises(FileNotFoundError):
        models.load_task_prompt("deploy")


def test_resolve_model_override(monkeypatch):
    monkeypatch.setattr(models, "get_settings", lambda: SimpleNamespace(default_model="minimax/MiniMax-M2.1"))
    model = models.resolve_model("anthropic/claude-sonnet-4-5")
    assert model.provider_id == "anthropic"
    assert model.model_id == "claude-sonnet-4-5"


def test_resolve_model_default(monkeypatch):
    monkeypatch.setattr(models, "get_settings", lambda: SimpleNamespace(default_model="minimax/MiniMax-M2.1"))
    assert str(models.resolve_model()) == "minimax/MiniMax-M2.1"


def test_resolve_model_rejects_bare_name(monkeypatch):
    monkeypatch.setattr(models, "get_settings", lambda: SimpleNamespace(default_model="gpt-4o"))
    with pytest.raises(ValueError, match="provider/model"):
        models.resolve_model()
