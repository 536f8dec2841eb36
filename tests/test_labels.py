"""Tests for label application: benign duplicates, per-label failures, single apply."""

from __future__ import annotations

import pytest

from app.core.retry import CancellationToken, RetryPolicy
from app.tools.labels import apply_labels, label_union
from app.tools.schemas import validate_tool_call
from infra.forge import ForgeError


def _command(labels=("bug",), new_labels=()):
    return validate_tool_call("apply_labels", {
        "repository": "owner/repo",
        "issueNumber": 12,
        "labels": list(labels),
        "newLabels": list(new_labels),
        "explanation": "Crash report with a stack trace.",
    }).unwrap()


class TestLabelUnion:
    def test_dedupes_in_order(self):
        cmd = _command(labels=["bug", "ui"], new_labels=[{"name": "bug", "color": "ff0000"}])
        assert label_union(cmd) == ["bug", "ui"]

    def test_existing_first_then_new(self):
        cmd = _command(labels=["bug"], new_labels=[{"name": "triage", "color": "ededed"}])
        assert label_union(cmd) == ["bug", "triage"]

    def test_unusable_new_labels_dropped(self):
        cmd = _command(labels=["bug"], new_labels=[
            {"name": "ui", "color": "aaaaaa"},
            {"name": "triage", "color": "ededed"},
        ])
        assert label_union(cmd, usable=["triage"]) == ["bug", "triage"]


class TestApplyLabels:
    @pytest.mark.asyncio
    async def test_creates_missing_label_and_applies(self, forge, policy):
        cmd = _command(labels=["bug"], new_labels=[{"name": "triage", "color": "ededed"}])
        result = await apply_labels(cmd, forge, policy)
        assert result.splitlines() == [
            "created: triage",
            "applied: bug, triage",
            "Reason: Crash report with a stack trace.",
        ]
        assert forge.issue_labels[12] == ["bug", "triage"]
        assert forge.calls.count("add_labels") == 1

    @pytest.mark.asyncio
    async def test_existing_label_is_benign(self, forge, policy):
        cmd = _command(labels=[], new_labels=[{"name": "bug", "color": "d73a4a"}])
        result = await apply_labels(cmd, forge, policy)
        assert result.splitlines()[0] == "skipped (already exists): bug"
        assert "applied: bug" in result
        assert forge.issue_labels[12] == ["bug"]

    @pytest.mark.asyncio
    async def test_other_creation_failure_does_not_stop_batch(self, forge, policy):
        forge.fail["create_label"] = ForgeError("GitHub POST failed: 403 forbidden", status_code=403)
        forge.fail_times["create_label"] = 1
        cmd = _command(labels=["bug"], new_labels=[
            {"name": "ui", "color": "aaaaaa"},
            {"name": "triage", "color": "ededed"},
        ])
        result = await apply_labels(cmd, forge, policy)
        lines = result.splitlines()
        assert lines[0].startswith("failed: label ui: GitHub POST failed: 403")
        assert lines[1] == "created: triage"
        assert "applied: bug, triage" in lines
        assert forge.issue_labels[12] == ["bug", "triage"]
        assert forge.calls.count("create_label") == 2

    @pytest.mark.asyncio
    async def test_only_failed_new_labels_applies_nothing(self, forge, policy):
        forge.fail["create_label"] = ForgeError("GitHub POST failed: 403 forbidden", status_code=403)
        cmd = _command(labels=[], new_labels=[{"name": "ui", "color": "aaaaaa"}])
        result = await apply_labels(cmd, forge, policy)
        assert result.splitlines()[-1] == "failed: no usable labels to apply"
        assert "add_labels" not in forge.calls

    @pytest.mark.asyncio
    async def test_apply_failure_never_claims_success(self, forge, policy):
        forge.fail["add_labels"] = ForgeError("GitHub POST failed: 404 not found", status_code=404)
        result = await apply_labels(_command(), forge, policy)
        assert result.startswith("failed: could not apply labels bug")
        assert "applied:" not in result
        assert "Reason:" not in result

    @pytest.mark.asyncio
    async def test_transient_apply_failure_is_retried(self, forge, policy):
        forge.fail["add_labels"] = ForgeError("GitHub POST failed: 503 unavailable", status_code=503)
        forge.fail_times["add_labels"] = 2
        result = await apply_labels(_command(), forge, policy)
        assert "applied: bug" in result
        assert forge.calls.count("add_labels") == 3

    @pytest.mark.asyncio
    async def test_cancelled_before_apply(self, forge):
        token = CancellationToken()
        token.cancel()
        result = await apply_labels(_command(), forge, RetryPolicy(base_delay=0.0, cancel=token))
        assert result == "aborted: operation aborted"
        assert "add_labels" not in forge.calls
