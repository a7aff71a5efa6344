"""Default values shared across stepflow components."""

DEFAULT_SHELL = "/bin/sh"
DEFAULT_MAX_SUBWORKFLOW_DEPTH = 8
DEFAULT_RETRY_BACKOFF_BASE = 1.5
DEFAULT_RETRY_BACKOFF_JITTER = 0.5
DEFAULT_CONFIG_FILE = "stepflow.yaml"

TOPIC_PREFIX = "stepflow"
COMMANDS_TOPIC = "commands"
EVENTS_TOPIC = "events"
