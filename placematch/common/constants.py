"""Application constants."""

USER_AGENT = "placematch/2.0 (+directory-enrichment)"
API_VERSION = "v1"
PROGRESS_VERSION = "2.0.0"
COMMANDS = (
    "enrich",
    "acquire",
    "apply",
)
PHASES = (
    "initializing",
    "processing",
    "completed",
    "paused",
    "failed",
)
OUTCOME_ENRICHED = "enriched"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"
OUTCOME_ALREADY_ENRICHED = "already-enriched"
OUTCOMES = (
    OUTCOME_ENRICHED,
    OUTCOME_FAILED,
    OUTCOME_SKIPPED,
    OUTCOME_ALREADY_ENRICHED,
)
CALL_KINDS = ("search", "details", "photo")
EXIT_SUCCESS = 0
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "record_id",
    "category",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "records_in",
    "records_out",
    "error_code",
    "message",
)
