# /forkharness/core/config.py
from typing import Literal

import structlog
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Large enough to pay for any scenario's gas; the amount forked suites
# inject into impersonated whales.
DEFAULT_GAS_FUNDING_WEI = 0xFFFFFFFFFFFFFFFF


class Settings(BaseSettings):
    # Fork backend
    FORK_RPC_URL: SecretStr | None = None
    # When set, forked suites re-fork the local node from this archive endpoint
    # at FORK_BLOCK_NUMBER before provisioning.
    FORK_UPSTREAM_URL: SecretStr | None = None
    FORK_BLOCK_NUMBER: int | None = None
    LEDGER_RPC_NAMESPACE: Literal["hardhat", "anvil"] = "hardhat"

    # Every blocking backend call (RPC request, receipt wait) is bounded by this.
    RPC_TIMEOUT_SECONDS: int = 120

    GAS_FUNDING_WEI: int = DEFAULT_GAS_FUNDING_WEI

    # Compiled contract artifacts ({"abi": [...], "bytecode": "0x..."})
    ARTIFACTS_DIR: str = "artifacts"

    # Operational Settings
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @property
    def fork_rpc_url(self) -> str | None:
        """Plain-text fork URL, or ``None`` when no fork is configured."""
        if self.FORK_RPC_URL is None:
            return None
        return self.FORK_RPC_URL.get_secret_value()

    @property
    def fork_upstream_url(self) -> str | None:
        if self.FORK_UPSTREAM_URL is None:
            return None
        return self.FORK_UPSTREAM_URL.get_secret_value()


try:
    settings = Settings()
except Exception as e:
    # The harness logger reads these settings, so report through bare structlog
    structlog.get_logger("ForkHarness.Config").critical("FAILED_TO_LOAD_SETTINGS", error=str(e))
    raise SystemExit(1)
