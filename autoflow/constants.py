"""Engine-wide defaults."""

from decimal import Decimal

RECENT_EXECUTIONS_LIMIT = 10

ACTION_API_CALLS = 1
ACTION_COST = Decimal("0.01")
AGENT_API_CALLS = 2
AGENT_COST = Decimal("0.05")

DEFAULT_DELAY_MS = 1000
DEFAULT_RETRY_INITIAL_DELAY_MS = 1000
DEFAULT_RETRY_BACKOFF_MULTIPLIER = 2.0
