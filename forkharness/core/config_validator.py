# /forkharness/core/config_validator.py
# Run before forked suites to fail fast on incomplete fork configuration.
from forkharness.core.config import settings
from forkharness.core.logger import log

def validate():
    log.info("--- FORK CONFIG VALIDATION START ---")
    errors = []

    if not settings.fork_rpc_url:
        errors.append("Missing required configuration: FORK_RPC_URL")
    if settings.FORK_BLOCK_NUMBER is not None and settings.FORK_BLOCK_NUMBER <= 0:
        errors.append(f"FORK_BLOCK_NUMBER must be positive, got {settings.FORK_BLOCK_NUMBER}")
    if settings.RPC_TIMEOUT_SECONDS <= 0:
        errors.append("RPC_TIMEOUT_SECONDS must be positive; hung backend calls are only bounded by it")
    if settings.GAS_FUNDING_WEI <= 0:
        errors.append("GAS_FUNDING_WEI must be positive; impersonated accounts need gas")

    if errors:
        for error in errors:
            log.critical(error)
        raise ValueError("Fork configuration is incomplete. Halting.")

    log.info("--- FORK CONFIG VALIDATION PASSED ---")

if __name__ == "__main__":
    validate()
