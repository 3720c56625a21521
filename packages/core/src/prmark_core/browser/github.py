"""DiffView implementation for GitHub's "Files changed" tab, driven by Playwright.

GitHub renders the diff with React. The per-line "+" control only appears on
hover and is wired through React's synthetic event system, and the comment
textarea is a controlled input whose value React tracks separately from the
DOM. So instead of simulating pointer/keyboard input we:

- find the React props object that owns a press handler by walking the
  fiber chain (``__reactFiber$*``) outward from the line cell, falling back to
  ``__reactProps$*`` on DOM ancestors, and call it with a minimal fake event;
- write text via the native ``value`` setter followed by bubbling ``input``
  and ``change`` events, which is what React listens for.

All markup assumptions live in GitHubSelectors so they can be overridden
from .prmark.yml when GitHub changes its DOM.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING

from playwright.sync_api import Error as PlaywrightError

from prmark_core.annotate.base import ActivationHandler, DiffView
from prmark_core.errors import (
    STAGE_SUBMIT,
    AffordanceNotFound,
    EditorNotReady,
    FinalizationFailed,
    TargetNotFound,
)
from prmark_core.models import Side, Verdict

if TYPE_CHECKING:
    from playwright.sync_api import ElementHandle, Page

    from prmark_core.models import DiffTarget

logger = logging.getLogger(__name__)

# GitHub's review dialog radio values.
_VERDICT_EVENT = {
    Verdict.APPROVE: "approve",
    Verdict.APPROVE_WITH_SUGGESTIONS: "comment",
    Verdict.REQUEST_CHANGES: "reject",
}

_SIDE_ATTR = {Side.ORIGINAL: "left", Side.REVISED: "right"}


@dataclass
class GitHubSelectors:
    # {path}, {line} and {side} are substituted with CSS-escaped values.
    file_container: str = '[data-tagsearch-path="{path}"], [data-file-path="{path}"]'
    line_cell: str = 'td[data-line-number="{line}"][data-diff-side="{side}"]'
    # Any row holding one of these is a diff line, not part of a comment thread.
    diff_line: str = "td[data-line-number]"
    load_diff: str = 'button.load-diff-button, button:has-text("Load diff")'
    comment_input: str = 'textarea[name="comment[body]"], textarea[aria-label*="comment" i]'
    start_review: str = 'button:has-text("Start a review")'
    add_comment: str = 'button:has-text("Add review comment")'
    pending_label: str = '.Label:has-text("Pending"), span:text-is("Pending")'
    review_dialog_toggle: str = 'button:has-text("Review changes"), button:has-text("Finish your review")'
    review_body: str = 'textarea[name="pull_request_review[body]"], #pull_request_review_body'
    review_event: str = 'input[type="radio"][name="pull_request_review[event]"][value="{event}"]'
    review_submit: str = 'button[type="submit"]:has-text("Submit review")'

    @classmethod
    def from_config(cls, overrides: dict | None) -> GitHubSelectors:
        known = {f.name for f in fields(cls)}
        unknown = set(overrides or {}) - known
        if unknown:
            raise ValueError(f"Unknown GitHub selector(s) in config: {', '.join(sorted(unknown))}")
        return cls(**(overrides or {}))


def _css_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


# Walk from the anchor outward and return the depth of the first node that
# exposes a press handler, or null. Depth counts fiber hops first, then DOM
# parents when the element carries no fiber at all.
_FIND_HANDLER_JS = """
(anchor) => {
  const PRESS = ['onMouseDown', 'onPointerDown', 'onClick'];
  const key = (node, prefix) => Object.keys(node).find((k) => k.startsWith(prefix));
  const pick = (props) => props && PRESS.find((name) => typeof props[name] === 'function');

  const fiberKey = key(anchor, '__reactFiber$');
  if (fiberKey) {
    let fiber = anchor[fiberKey];
    for (let depth = 0; fiber; depth++, fiber = fiber.return) {
      const name = pick(fiber.memoizedProps);
      if (name) {
        return {mode: 'fiber', depth, name, hasKeyDown: typeof fiber.memoizedProps.onKeyDown === 'function'};
      }
    }
  }
  let node = anchor;
  for (let depth = 0; node; depth++, node = node.parentElement) {
    const propsKey = key(node, '__reactProps$');
    const name = propsKey && pick(node[propsKey]);
    if (name) {
      return {mode: 'dom', depth, name, hasKeyDown: typeof node[propsKey].onKeyDown === 'function'};
    }
  }
  return null;
}
"""

# Re-walk to the recorded depth and call the named handler with the fields
# GitHub's handlers actually read.
_INVOKE_HANDLER_JS = """
(anchor, info) => {
  const key = (node, prefix) => Object.keys(node).find((k) => k.startsWith(prefix));
  let props = null;
  let current = anchor;
  if (info.mode === 'fiber') {
    let fiber = anchor[key(anchor, '__reactFiber$')];
    for (let i = 0; i < info.depth; i++) fiber = fiber.return;
    props = fiber.memoizedProps;
    if (fiber.stateNode instanceof Element) current = fiber.stateNode;
  } else {
    for (let i = 0; i < info.depth; i++) current = current.parentElement;
    props = current[key(current, '__reactProps$')];
  }
  const rect = anchor.getBoundingClientRect();
  const event = {
    type: info.type,
    key: info.key,
    code: info.key,
    target: anchor,
    currentTarget: current,
    button: 0,
    buttons: 1,
    clientX: rect.left + rect.width / 2,
    clientY: rect.top + rect.height / 2,
    nativeEvent: {},
    preventDefault() {},
    stopPropagation() {},
    isDefaultPrevented() { return false; },
    isPropagationStopped() { return false; },
    persist() {},
  };
  props[info.name](event);
}
"""

_SET_VALUE_JS = """
(el, value) => {
  const proto = el instanceof HTMLTextAreaElement ? HTMLTextAreaElement.prototype : HTMLInputElement.prototype;
  Object.getOwnPropertyDescriptor(proto, 'value').set.call(el, value);
  el.dispatchEvent(new Event('input', {bubbles: true}));
  el.dispatchEvent(new Event('change', {bubbles: true}));
}
"""

# Inline comment threads and forms render in the rows right after the line's
# own row, up to the next diff line.
_THREAD_ROWS_JS = """
(cell, diffLine) => {
  const rows = [];
  let row = cell.closest('tr');
  while (row && (row = row.nextElementSibling)) {
    if (row.querySelector(diffLine)) break;
    rows.push(row);
  }
  return rows;
}
"""

_FENCE_LINE = re.compile(r"^\s*(```|~~~).*$", re.MULTILINE)
_LINK_TARGET = re.compile(r"\]\([^)]*\)")
_WORD = re.compile(r"\w+")


def _comment_words(text: str) -> str:
    """Words of a comment, without the markdown syntax GitHub drops when rendering."""
    text = _LINK_TARGET.sub("]", _FENCE_LINE.sub("", text))
    return " ".join(_WORD.findall(text))


@contextmanager
def _playwright_errors(error_cls, message: str, target: DiffTarget | None = None, stage: str | None = None):
    try:
        yield
    except PlaywrightError as e:
        raise error_cls(f"{message}: {e}", target, stage) from e


class GitHubActivationHandler(ActivationHandler):
    def __init__(self, anchor: ElementHandle, info: dict):
        self.anchor = anchor
        self.info = info
        self.needs_confirm = bool(info.get("hasKeyDown"))

    def press(self) -> None:
        with _playwright_errors(AffordanceNotFound, "press handler failed"):
            self.anchor.evaluate(_INVOKE_HANDLER_JS, {**self.info, "type": "mousedown", "key": None})

    def confirm(self) -> None:
        with _playwright_errors(AffordanceNotFound, "keyboard confirm failed"):
            self.anchor.evaluate(
                _INVOKE_HANDLER_JS, {**self.info, "name": "onKeyDown", "type": "keydown", "key": "Enter"}
            )


class GitHubDiffView(DiffView):
    """DiffView over a Playwright page.

    Playwright errors (detached elements after a re-render, timeouts) are
    raised as the AnnotationError of the stage they happened in, so one bad
    line never ends the whole placement pass.
    """

    def __init__(self, page: Page, selectors: GitHubSelectors | None = None, base_url: str = "https://github.com"):
        self.page = page
        self.selectors = selectors or GitHubSelectors()
        self.base_url = base_url.rstrip("/")
        self._anchors: dict[DiffTarget, ElementHandle] = {}

    def open_pull(self, repo: str, pr_number: int) -> None:
        url = f"{self.base_url}/{repo}/pull/{pr_number}/files"
        logger.debug("Opening %s", url)
        with _playwright_errors(TargetNotFound, f"could not open {url}"):
            self.page.goto(url)
            self.page.wait_for_load_state("domcontentloaded")

    def _target_of(self, anchor: ElementHandle) -> DiffTarget | None:
        return next((t for t, a in reversed(list(self._anchors.items())) if a is anchor), None)

    # ------------------------------------------------------------------ #
    # Locating                                                             #
    # ------------------------------------------------------------------ #

    def _file_containers(self, file: str) -> list[ElementHandle]:
        return self.page.query_selector_all(self.selectors.file_container.format(path=_css_string(file)))

    def find_anchors(self, target: DiffTarget) -> list[ElementHandle]:
        selector = self.selectors.line_cell.format(line=target.line, side=_SIDE_ATTR[target.side])
        anchors = []
        with _playwright_errors(TargetNotFound, "could not query the diff", target):
            for container in self._file_containers(target.file):
                anchors.extend(container.query_selector_all(selector))
        if len(anchors) == 1:
            # Most recently located last, so _target_of prefers it.
            self._anchors.pop(target, None)
            self._anchors[target] = anchors[0]
        return anchors

    def is_collapsed(self, file: str) -> bool:
        with _playwright_errors(TargetNotFound, f"could not inspect the diff of {file}"):
            return any(c.query_selector(self.selectors.load_diff) for c in self._file_containers(file))

    def expand_file(self, file: str) -> None:
        with _playwright_errors(TargetNotFound, f"could not load the diff of {file}"):
            for container in self._file_containers(file):
                button = container.query_selector(self.selectors.load_diff)
                if button is not None:
                    button.click()

    def scroll_into_view(self, anchor: ElementHandle) -> None:
        with _playwright_errors(TargetNotFound, "could not scroll to the line", self._target_of(anchor)):
            anchor.scroll_into_view_if_needed()

    # ------------------------------------------------------------------ #
    # Activating & editing                                                 #
    # ------------------------------------------------------------------ #

    def find_activation_handler(self, anchor: ElementHandle) -> GitHubActivationHandler | None:
        with _playwright_errors(AffordanceNotFound, "could not inspect the line's handlers", self._target_of(anchor)):
            info = anchor.evaluate(_FIND_HANDLER_JS)
        if not info:
            return None
        logger.debug("Found %s handler at %s depth %d", info["name"], info["mode"], info["depth"])
        return GitHubActivationHandler(anchor, info)

    def _thread_rows(self, target: DiffTarget) -> list[ElementHandle]:
        anchor = self._anchors.get(target)
        if anchor is None:
            return []
        handle = anchor.evaluate_handle(_THREAD_ROWS_JS, self.selectors.diff_line)
        rows = [prop.as_element() for prop in handle.get_properties().values()]
        return [row for row in rows if row is not None]

    def find_surface(self, target: DiffTarget) -> ElementHandle | None:
        with _playwright_errors(AffordanceNotFound, "could not look for the comment input", target):
            for row in self._thread_rows(target):
                for textarea in row.query_selector_all(self.selectors.comment_input):
                    if textarea.is_visible() and textarea.is_enabled():
                        return textarea
        return None

    def read_content(self, surface: ElementHandle) -> str:
        with _playwright_errors(EditorNotReady, "could not read the comment input"):
            return surface.input_value()

    def set_content(self, surface: ElementHandle, body: str) -> None:
        with _playwright_errors(EditorNotReady, "could not write the comment input"):
            surface.evaluate(_SET_VALUE_JS, body)

    # ------------------------------------------------------------------ #
    # Submitting                                                           #
    # ------------------------------------------------------------------ #

    def submit_annotation(self, target: DiffTarget, surface: ElementHandle, start_review: bool) -> None:
        selector = self.selectors.start_review if start_review else self.selectors.add_comment
        with _playwright_errors(AffordanceNotFound, "could not press the submit button", target, STAGE_SUBMIT):
            form = surface.evaluate_handle("(el) => el.closest('form')").as_element()
            button = form.query_selector(selector) if form is not None else None
            if button is None:
                if start_review:
                    message = (
                        '"Start a review" button not found next to the comment input; '
                        "a pending review may already exist on this pull request"
                    )
                else:
                    message = '"Add review comment" button not found next to the comment input'
                raise AffordanceNotFound(message, target, STAGE_SUBMIT)
            button.click()

    def is_pending(self, target: DiffTarget, body: str) -> bool:
        # Rendered markdown loses its syntax, so compare the full word sequence.
        expected = _comment_words(body)
        if not expected:
            return False
        try:
            for row in self._thread_rows(target):
                if row.query_selector(self.selectors.pending_label) is None:
                    continue
                if f" {expected} " in f" {_comment_words(row.inner_text())} ":
                    return True
        except PlaywrightError as e:
            logger.debug("Pending check for %s failed: %s", target, e)
        return False

    def submit_session(self, verdict: Verdict, summary: str) -> None:
        s = self.selectors
        with _playwright_errors(FinalizationFailed, "review dialog interaction failed"):
            toggle = self.page.query_selector(s.review_dialog_toggle)
            if toggle is None:
                raise FinalizationFailed('"Review changes" button not found')
            toggle.click()

            body = self.page.wait_for_selector(s.review_body, state="visible")
            body.evaluate(_SET_VALUE_JS, summary)

            radio = self.page.query_selector(s.review_event.format(event=_VERDICT_EVENT[verdict]))
            if radio is None:
                raise FinalizationFailed(f"no review option for verdict {verdict.value!r}")
            radio.check()

            submit = self.page.query_selector(s.review_submit)
            if submit is None:
                raise FinalizationFailed('"Submit review" button not found')
            submit.click()

    def is_session_submitted(self) -> bool:
        try:
            return self.page.query_selector(self.selectors.pending_label) is None
        except PlaywrightError as e:
            logger.debug("Submission check failed: %s", e)
            return False
