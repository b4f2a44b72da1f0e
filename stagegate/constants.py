"""Shared defaults for stagegate."""

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_POLL_MAX_ATTEMPTS = 60
DEFAULT_WORKFLOWS = ("stagegate.workflows.fiction:fiction_workflow",)
