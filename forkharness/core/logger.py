# /forkharness/core/logger.py
import logging
import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars
from prometheus_client import Counter
from forkharness.core.config import settings

# --- Prometheus Metrics ---
CHECKPOINTS_TAKEN = Counter("forkharness_checkpoints_taken_total", "Ledger checkpoints taken")
CHECKPOINTS_RESTORED = Counter("forkharness_checkpoints_restored_total", "Ledger checkpoints restored")
STALE_CHECKPOINTS = Counter("forkharness_stale_checkpoints_total", "Checkpoint restores rejected as stale")
EXTERNAL_CALL_FAILURES = Counter("forkharness_external_call_failures_total", "Reverted or failed external calls", ["target"])
SCENARIOS_FINISHED = Counter("forkharness_scenarios_finished_total", "Scenarios run to completion", ["outcome"])


def configure_logging():
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(settings.LOG_LEVEL)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

def get_logger(name: str):
    return structlog.get_logger(name)

def bind_scenario(name: str):
    bind_contextvars(scenario=name)

def unbind_scenario():
    unbind_contextvars("scenario")

configure_logging()
log = get_logger("ForkHarness.System")
