"""Tests for the review pipeline: findings, verdicts, publishing paths."""

import types
from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest
from conftest import FakeDiffView

from prmark_core.annotate.session import PlacementReport
from prmark_core.errors import AffordanceNotFound, TargetNotFound
from prmark_core.models import Annotation, DiffTarget, Side, SubmissionRecord, Verdict
from prmark_core.reviewer import (
    Finding,
    _get_reviewer,
    _is_excluded,
    determine_verdict,
    place_inline,
    process_file,
    render_single_comment,
    run_review,
)

# One added line at new-file line 2, one removed line at old-file line 2.
SIMPLE_PATCH = "@@ -1,3 +1,3 @@\n line1\n+new line\n-old line\n line3\n"


def make_file(filename="src/foo.py", status="modified", patch=SIMPLE_PATCH):
    return types.SimpleNamespace(filename=filename, status=status, patch=patch)


class StubReviewer:
    def __init__(self, findings):
        self._findings = findings

    def review(self, **kwargs):
        return self._findings


def _finding(line=2, severity="minor", side=Side.REVISED, path="src/foo.py"):
    return Finding(Annotation(DiffTarget(path, line, side), f"**[{severity.upper()}]**\n\nx"), severity)


# ---------------------------------------------------------------------------
# process_file
# ---------------------------------------------------------------------------


class TestProcessFile:
    def test_skips_removed_file(self):
        assert process_file(StubReviewer([]), "", "", make_file(status="removed"), SIMPLE_PATCH, "", []) == []

    def test_skips_empty_patch(self):
        assert process_file(StubReviewer([]), "", "", make_file(), "", "", []) == []

    def test_valid_finding_becomes_annotation(self):
        reviewer = StubReviewer([{"line": 2, "severity": "minor", "comment": "bad name"}])
        [finding] = process_file(reviewer, "", "", make_file(), SIMPLE_PATCH, "", [])
        assert finding.annotation.target == DiffTarget("src/foo.py", 2, Side.REVISED)
        assert finding.annotation.body == "**[MINOR]**\n\nbad name"
        assert finding.code == "new line"

    def test_original_side_finding_on_removed_line(self):
        reviewer = StubReviewer([{"line": 2, "side": "original", "severity": "major", "comment": "null check gone"}])
        [finding] = process_file(reviewer, "", "", make_file(), SIMPLE_PATCH, "", [])
        assert finding.annotation.target.side is Side.ORIGINAL
        assert finding.code == "old line"

    @pytest.mark.parametrize(
        "item",
        [
            {"line": 99, "severity": "minor", "comment": "not in diff"},
            {"severity": "minor", "comment": "no line"},
            {"line": 2, "severity": "minor"},
            {"line": 2, "side": "middle", "comment": "bad side"},
            {"line": "two", "comment": "bad line"},
        ],
    )
    def test_unplaceable_findings_dropped(self, item):
        assert process_file(StubReviewer([item]), "", "", make_file(), SIMPLE_PATCH, "", []) == []

    def test_invalid_severity_defaults_to_minor(self):
        reviewer = StubReviewer([{"line": 2, "severity": "blocker", "comment": "issue"}])
        [finding] = process_file(reviewer, "", "", make_file(), SIMPLE_PATCH, "", [])
        assert finding.severity == "minor"

    def test_duplicate_in_queued_skipped(self):
        reviewer = StubReviewer([{"line": 2, "severity": "minor", "comment": "bad name"}])
        queued = {("src/foo.py", 2, Side.REVISED, "bad name")}
        assert process_file(reviewer, "", "", make_file(), SIMPLE_PATCH, "", [], queued) == []

    def test_duplicate_existing_github_comment_skipped(self):
        reviewer = StubReviewer([{"line": 2, "severity": "minor", "comment": "bad name"}])
        existing = MagicMock(path="src/foo.py", line=2, side="RIGHT", body="**[MINOR]**\n\nbad name")
        assert process_file(reviewer, "", "", make_file(), SIMPLE_PATCH, "", [existing]) == []

    def test_existing_comment_on_other_side_is_not_a_duplicate(self):
        reviewer = StubReviewer([{"line": 2, "severity": "minor", "comment": "bad name"}])
        existing = MagicMock(path="src/foo.py", line=2, side="LEFT", body="bad name")
        assert len(process_file(reviewer, "", "", make_file(), SIMPLE_PATCH, "", [existing])) == 1


# ---------------------------------------------------------------------------
# verdict and rendering
# ---------------------------------------------------------------------------


class TestVerdict:
    def test_no_findings_approves(self):
        assert determine_verdict([]) is Verdict.APPROVE

    def test_minor_only_approves_with_suggestions(self):
        assert determine_verdict([_finding(severity="minor"), _finding(severity="nitpick")]) is (
            Verdict.APPROVE_WITH_SUGGESTIONS
        )

    def test_major_requests_changes(self):
        assert determine_verdict([_finding(severity="minor"), _finding(severity="major")]) is Verdict.REQUEST_CHANGES


def test_single_comment_lists_every_finding():
    record = SubmissionRecord(Verdict.REQUEST_CHANGES, "## Review summary")
    text = render_single_comment([_finding(2), _finding(3, side=Side.ORIGINAL)], record)
    assert "Request changes" in text
    assert "## Review summary" in text
    assert "`src/foo.py` line 2\n" in text
    assert "`src/foo.py` line 3 (original)" in text


def test_is_excluded_patterns():
    assert _is_excluded("app/migrations/0001.py", ["migrations/"])
    assert _is_excluded("yarn.lock", ["*.lock"])
    assert not _is_excluded("src/app.py", ["migrations/", "*.lock"])


def test_unknown_model_rejected():
    with pytest.raises(ValueError):
        _get_reviewer({"model": "llama"})


# ---------------------------------------------------------------------------
# run_review
# ---------------------------------------------------------------------------


def _base_config(**overrides):
    config = {
        "github_token": "tok",
        "model": "anthropic",
        "anthropic_api_key": "key",
        "openai_api_key": None,
        "mode": "comment",
        "review_draft_prs": False,
        "exclude": [],
        "max_chars_per_file": 20000,
        "guidelines": None,
        "on_error": "skip",
        "confirm_timeout": 0,
        "poll_interval": 0,
        "browser": {"headless": True, "base_url": "https://github.com", "selectors": {}},
    }
    config.update(overrides)
    return config


def _mock_pr(draft=False, files=None):
    pr = MagicMock()
    pr.number = 1
    pr.title = "Fix bug"
    pr.body = "desc"
    pr.draft = draft
    pr.head.sha = "a" * 40
    pr.get_files.return_value = files if files is not None else [make_file()]
    pr.get_review_comments.return_value = []
    return pr


def _setup(mocker, pr, findings):
    repo = MagicMock()
    repo.get_contents.return_value.decoded_content = b"line1\nnew line\nline3\n"
    mocker.patch("prmark_core.reviewer.get_pull", return_value=pr)
    mocker.patch("prmark_core.reviewer._get_reviewer", return_value=StubReviewer(findings))
    return repo


class TestRunReview:
    def test_skips_draft_pr(self, mocker):
        pr = _mock_pr(draft=True)
        repo = _setup(mocker, pr, [])
        assert run_review("owner/repo", 1, _base_config(), repo_obj=repo) is None
        pr.create_issue_comment.assert_not_called()

    def test_shadow_mode_publishes_nothing(self, mocker):
        pr = _mock_pr()
        repo = _setup(mocker, pr, [{"line": 2, "severity": "minor", "comment": "bad name"}])
        summary = run_review("owner/repo", 1, _base_config(), shadow=True, repo_obj=repo)
        assert len(summary.findings) == 1
        assert summary.verdict is Verdict.APPROVE_WITH_SUGGESTIONS
        assert summary.published is False
        pr.create_issue_comment.assert_not_called()

    def test_comment_mode_posts_single_comment(self, mocker):
        pr = _mock_pr()
        repo = _setup(mocker, pr, [{"line": 2, "severity": "critical", "comment": "SQL injection"}])
        summary = run_review("owner/repo", 1, _base_config(), auto_confirm=True, repo_obj=repo)
        assert summary.published is True
        assert summary.verdict is Verdict.REQUEST_CHANGES
        body = pr.create_issue_comment.call_args.args[0]
        assert "SQL injection" in body

    def test_user_declines(self, mocker):
        pr = _mock_pr()
        repo = _setup(mocker, pr, [])
        mocker.patch("builtins.input", return_value="n")
        assert run_review("owner/repo", 1, _base_config(), repo_obj=repo) is None
        pr.create_issue_comment.assert_not_called()

    def test_excluded_and_binary_files_skipped(self, mocker):
        pr = _mock_pr(files=[make_file("logo.png"), make_file("app/migrations/0001.py"), make_file()])
        repo = _setup(mocker, pr, [])
        summary = run_review(
            "owner/repo", 1, _base_config(exclude=["migrations/"]), shadow=True, repo_obj=repo
        )
        assert summary.reviewed_files == ["src/foo.py"]
        assert sorted(summary.skipped_files) == ["app/migrations/0001.py", "logo.png"]

    def test_unknown_mode_rejected(self, mocker):
        repo = _setup(mocker, _mock_pr(), [])
        with pytest.raises(ValueError, match="mode"):
            run_review("owner/repo", 1, _base_config(mode="email"), repo_obj=repo)

    def test_inline_mode_uses_browser_and_records_outcome(self, mocker):
        pr = _mock_pr()
        repo = _setup(mocker, pr, [{"line": 2, "severity": "minor", "comment": "bad name"}])
        page = MagicMock()
        opened = []

        @contextmanager
        def page_factory(browser_config):
            opened.append(browser_config)
            yield page

        def fake_place_inline(repo_name, pr_number, findings, record, config, page_arg):
            assert page_arg is page
            return PlacementReport(placed=[f.annotation for f in findings]), True

        mocker.patch("prmark_core.reviewer.place_inline", side_effect=fake_place_inline)
        summary = run_review(
            "owner/repo", 1, _base_config(mode="inline"), auto_confirm=True, repo_obj=repo, page_factory=page_factory
        )
        assert opened == [_base_config()["browser"]]
        assert summary.published is True
        assert summary.placed == summary.annotations
        pr.create_issue_comment.assert_not_called()

    def test_inline_mode_without_findings_falls_back_to_comment(self, mocker):
        pr = _mock_pr()
        repo = _setup(mocker, pr, [])
        page_factory = MagicMock()
        summary = run_review(
            "owner/repo", 1, _base_config(mode="inline"), auto_confirm=True, repo_obj=repo, page_factory=page_factory
        )
        page_factory.assert_not_called()
        assert summary.verdict is Verdict.APPROVE
        pr.create_issue_comment.assert_called_once()


# ---------------------------------------------------------------------------
# place_inline against the in-memory diff view
# ---------------------------------------------------------------------------


class TestPlaceInline:
    RECORD = SubmissionRecord(Verdict.APPROVE_WITH_SUGGESTIONS, "two minor notes")

    def _run(self, mocker, view, findings, **config):
        mocker.patch("prmark_core.browser.github.GitHubDiffView", return_value=view)
        return place_inline("owner/repo", 5, findings, self.RECORD, _base_config(**config), MagicMock())

    def test_places_all_and_submits(self, mocker):
        findings = [_finding(2), _finding(3, side=Side.ORIGINAL)]
        view = FakeDiffView(lines=[f.annotation.target for f in findings])
        report, finalized = self._run(mocker, view, findings)
        assert finalized is True
        assert len(report.placed) == 2
        assert view.opened == [("owner/repo", 5)]
        assert view.submitted_sessions[0][0] is Verdict.APPROVE_WITH_SUGGESTIONS

    def test_failed_annotation_is_reported_and_rest_submitted(self, mocker):
        findings = [_finding(2), _finding(3, side=Side.ORIGINAL)]
        view = FakeDiffView(lines=[f.annotation.target for f in findings])
        view.no_handler.add(findings[0].annotation.target)
        report, finalized = self._run(mocker, view, findings)
        assert finalized is True
        assert isinstance(report.failed[0][1], AffordanceNotFound)
        assert len(report.placed) == 1

    def test_nothing_placed_means_nothing_submitted(self, mocker):
        findings = [_finding(2)]
        view = FakeDiffView(lines=[])
        report, finalized = self._run(mocker, view, findings)
        assert finalized is False
        assert view.submitted_sessions == []
        assert len(report.failed) == 1

    def test_finalization_failure_is_not_raised(self, mocker):
        findings = [_finding(2)]
        view = FakeDiffView(lines=[findings[0].annotation.target])
        view.fail_submit_session = True
        report, finalized = self._run(mocker, view, findings)
        assert finalized is False
        assert len(report.placed) == 1

    def test_page_that_fails_to_open_fails_every_annotation(self, mocker):
        findings = [_finding(2), _finding(3, side=Side.ORIGINAL)]
        view = FakeDiffView(lines=[f.annotation.target for f in findings])
        mocker.patch.object(view, "open_pull", side_effect=TargetNotFound("could not open the files tab"))
        report, finalized = self._run(mocker, view, findings)
        assert finalized is False
        assert report.placed == []
        assert [error.target for _, error in report.failed] == [f.annotation.target for f in findings]
        assert all(error.stage == "locate" for _, error in report.failed)
        assert view.submitted_sessions == []
