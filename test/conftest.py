# /test/conftest.py
# Shared fixtures: a mock Liquity-style world (DAI whale, LUSD, an exact-output
# swapper, a stability-pool strategy and a trove manager) driven through the
# same LedgerFacade / ScenarioRunner code the forked suites use.

import pytest

from forkharness.adapters.mock import (
    MockChain, MockStrategy, MockSwapper, MockToken, MockTroveManager, mock_ledger,
)
from forkharness.core.scenario import (
    Approval, FundingConfig, ProvisionConfig, ScenarioRunner, SwapConfig,
)

from constants import (
    AMOUNT_TO_TRANSFER, COLLATERAL_PER_TROVE, DAI_ADDR, DAI_WHALE, DEBT_PER_TROVE, LIQUIDATABLE_TROVES,
    LUSD_ADDR, LUSD_AMOUNT_TO_USE, PENDING_EPOCHS, REWARD_PER_EPOCH, STRATEGY_ADDR, SWAPPER_ADDR,
    TROVE_MANAGER_ADDR,
)


@pytest.fixture
def chain():
    return MockChain()


@pytest.fixture
def ledger(chain):
    return mock_ledger(chain)


@pytest.fixture
def owner(ledger):
    return ledger.local_account(0)


@pytest.fixture
def user(ledger):
    return ledger.local_account(1)


@pytest.fixture
def keeper(ledger):
    return ledger.local_account(6)


@pytest.fixture
def dai(chain):
    token = MockToken(chain, DAI_ADDR, "DAI")
    token.mint(DAI_WHALE, 1_000_000 * 10**18)
    return token


@pytest.fixture
def lusd(chain):
    return MockToken(chain, LUSD_ADDR, "LUSD")


@pytest.fixture
def swapper(chain, dai, lusd):
    swapper = MockSwapper(chain, SWAPPER_ADDR)
    # 1.01 DAI per LUSD on the 0.05% pool
    swapper.add_pool(DAI_ADDR, LUSD_ADDR, 500, numerator=101, denominator=100)
    lusd.mint(swapper.address, 1_000_000 * 10**18)
    return swapper


@pytest.fixture
def strategy(chain, lusd):
    return MockStrategy(chain, STRATEGY_ADDR, lusd, reward_per_epoch=REWARD_PER_EPOCH, pending_epochs=PENDING_EPOCHS)


@pytest.fixture
def trove_manager(chain, strategy):
    return MockTroveManager(chain, TROVE_MANAGER_ADDR, [strategy], troves=LIQUIDATABLE_TROVES,
                            debt_per_trove=DEBT_PER_TROVE, collateral_per_trove=COLLATERAL_PER_TROVE)


@pytest.fixture
def swap_config(swapper, dai, lusd):
    return SwapConfig(
        router=swapper,
        token_out=lusd,
        token_in=dai,
        route=[LUSD_ADDR, DAI_ADDR],
        fees=[500],
        amount_out=LUSD_AMOUNT_TO_USE,
        amount_in_max=AMOUNT_TO_TRANSFER,
        check_pools=True,
    )


@pytest.fixture
def provision_config(strategy, owner, user, dai, swapper, swap_config):
    return ProvisionConfig(
        strategy=strategy,
        owner=owner,
        user=user,
        initialize_params=(owner.address,),
        funding=FundingConfig(whale=DAI_WHALE, token=dai, amount=AMOUNT_TO_TRANSFER),
        approvals=[Approval(token=dai, spender=swapper.address, amount=AMOUNT_TO_TRANSFER)],
        swap=swap_config,
    )


@pytest.fixture
def runner(ledger, provision_config):
    runner = ScenarioRunner(ledger)
    runner.provision(provision_config)
    yield runner
    ledger.close()
