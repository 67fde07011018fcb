# /test/integration/conftest.py
# Forked-mainnet fixtures. These suites assume a hardhat or anvil node is
# already running at FORK_RPC_URL and that the contracts under test have been
# compiled into ARTIFACTS_DIR; otherwise every test here is skipped.

import pytest

from forkharness.adapters.artifacts import load_artifact
from forkharness.core import config_validator
from forkharness.core.config import settings
from forkharness.core.ledger import LedgerFacade


@pytest.fixture(scope="module")
def fork_ledger():
    if not settings.fork_rpc_url:
        pytest.skip("FORK_RPC_URL is not set; start a forked node and point FORK_RPC_URL at it.")
    ledger = LedgerFacade.connect()
    if not ledger.w3.is_connected():
        pytest.skip(f"Could not connect to the fork node at {settings.fork_rpc_url}.")

    config_validator.validate()
    if settings.fork_upstream_url:
        # start every module from the same pinned block
        ledger.reset_fork(settings.fork_upstream_url, settings.FORK_BLOCK_NUMBER)

    yield ledger
    ledger.close()


@pytest.fixture(scope="module")
def artifact():
    def load(name):
        try:
            return load_artifact(name)
        except FileNotFoundError as e:
            pytest.skip(f"{e}; compile the contracts first.")
    return load


@pytest.fixture(scope="module")
def accounts(fork_ledger):
    """Node dev accounts in the roles the suites give them."""
    return {
        "owner": fork_ledger.local_account(0),
        "user": fork_ledger.local_account(1),
        "proxy_admin": fork_ledger.local_account(4),
        "keeper": fork_ledger.local_account(6),
    }


@pytest.fixture(autouse=True)
def isolated_scenario(request, runner):
    """Every test runs between a checkpoint and its restore."""
    with runner.scenario(request.node.name):
        yield runner
