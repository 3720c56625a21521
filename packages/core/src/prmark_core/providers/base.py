"""Base reviewer implementing the Template Method pattern.

All providers share the same review algorithm:
    review() → _build_system_prompt() + _build_user_prompt()
             → _call_with_retry() → _call_api()   ← only this differs per provider
             → _parse()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

The reviewer's job ends at a list of findings for one file. Turning findings
into diff annotations and a verdict happens in prmark_core.reviewer.
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_MAX_TOKENS = 4096


class BaseReviewer(ABC):
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def review(
        self,
        description: str,
        file_name: str,
        diff_patch: str,
        file_content: str,
        guidelines: str,
    ) -> list[dict]:
        """Review one file's patch and return findings.

        Each finding is ``{"line", "side", "severity", "comment"}``.
        """
        system = self._build_system_prompt(guidelines)
        user = self._build_user_prompt(description, file_name, diff_patch, file_content)
        raw = self._call_with_retry(system, user)
        if raw is None:
            return []
        return self._parse(raw)

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        Should raise on failure; _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _call_with_retry(self, system_prompt: str, user_prompt: str) -> str | None:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff."""
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._call_api(system_prompt, user_prompt)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    return None
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)

    def _build_system_prompt(self, guidelines: str) -> str:
        return f"""You are a strict and precise senior code reviewer.
Review the patch below and identify issues according to the guidelines.

{guidelines}

Rules:
- Focus on added lines (starting with '+') for direct violations.
- Removed lines (starting with '-') matter too: deleted null checks, dropped
  error handling, removed permission guards. Comment on those on the "original" side.
- Do not comment on code that already follows best practices.
- Avoid assumptions when context is unclear. Be concise and actionable."""

    def _build_user_prompt(
        self,
        description: str,
        file_name: str,
        diff_patch: str,
        file_content: str,
    ) -> str:
        return f"""You are reviewing `{file_name}`.

## PR Description
{description}

## Diff
{diff_patch}

## Full File Content
{file_content}

### Output Format:
Respond with **only** a valid JSON list:

[
  {{
    "line": <line number (integer)>,
    "side": "<revised|original>",
    "severity": "<critical|major|minor|nitpick>",
    "comment": "<concise, actionable comment in GitHub-flavored markdown>"
  }},
  ...
]

Line numbering:
- side "revised": line number in the new file (added '+' or unchanged lines)
- side "original": line number in the old file (removed '-' lines)

Severity guide:
- critical: security vulnerability, data loss risk, crash
- major: logic bug, missing error handling, significant performance issue
- minor: code smell, unclear naming, missing type hint
- nitpick: style preference, minor formatting

Markdown rules for the "comment" field:
- Use inline backticks for identifiers: `variable_name`, `function()`
- Use triple-backtick fences with a language tag for multi-line code suggestions.
- Do not use HTML tags.

If there are no issues, return: []
Do not return any text outside the JSON block."""

    def _parse(self, raw: str) -> list[dict]:
        """Parse the model's raw text response into a list of finding dicts."""
        try:
            # Strip only the outer ```json ... ``` fence, not backticks inside
            # comment string values.
            cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
            cleaned = re.sub(r"\s*```$", "", cleaned.strip())
            parsed = json.loads(cleaned)
        except json.JSONDecodeError:
            logger.warning(
                "%s: failed to parse response as JSON: %s",
                self.__class__.__name__,
                raw[:200],
            )
            return []
        if not isinstance(parsed, list):
            logger.warning("%s: expected a JSON list, got %s", self.__class__.__name__, type(parsed).__name__)
            return []
        return [item for item in parsed if isinstance(item, dict)]
