import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "model": "anthropic",
    "model_name": None,  # None = the provider's default model id
    "mode": "comment",  # "comment" = one summary comment; "inline" = per-line annotations via the browser
    "max_chars_per_file": 20000,
    "guidelines": None,  # None = use built-in default; set to a path string to override
    "exclude": [],  # fnmatch patterns or directory names to skip (e.g. "migrations/", "*.min.js")
    "review_draft_prs": False,
    "on_error": "skip",  # what to do when one annotation cannot be placed: "skip" or "abort"
    "confirm_timeout": 10.0,  # seconds to wait for the page to confirm each step
    "poll_interval": 0.25,
    "browser": {
        "headless": True,
        "user_data_dir": None,  # None = ~/.prmark/browser
        "base_url": "https://github.com",
        "selectors": {},
    },
    "store": "noop",
}

BUILTIN_GUIDELINES_DIR = Path(__file__).parent / "guidelines"
_BUILTIN_DEFAULT = BUILTIN_GUIDELINES_DIR / "default.md"


def load_config(config_path: str = ".prmark.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prmark.yml in the current directory
      3. CLI argument overrides

    The ``browser`` section is merged key by key so a config file can set
    just ``browser: {headless: false}``.
    """
    config = {
        **DEFAULT_CONFIG,
        "exclude": list(DEFAULT_CONFIG["exclude"]),
        "browser": {**DEFAULT_CONFIG["browser"], "selectors": {}},
    }

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        browser = file_config.pop("browser", None) or {}
        config.update(file_config)
        config["browser"].update(browser)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is None:
                continue
            if key == "headless":
                config["browser"]["headless"] = value
            else:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def load_guidelines(config: dict) -> str:
    """
    Load review guidelines.

    If ``guidelines`` is set in config, loads from that path (relative to cwd).
    Otherwise falls back to the built-in default.
    """
    custom_path = config.get("guidelines")
    if custom_path:
        p = Path(custom_path)
        if not p.exists():
            raise FileNotFoundError(f"Guidelines file not found: {custom_path}")
        return p.read_text()

    if _BUILTIN_DEFAULT.exists():
        return _BUILTIN_DEFAULT.read_text()

    raise FileNotFoundError("No guidelines configured and built-in default is missing.")
