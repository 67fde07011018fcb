# /forkharness/adapters/strategy.py
# Call surface of the strategy contract under test. The contract itself
# (accounting, leverage, reward accrual) is external to the harness.

from web3 import Web3
from web3.contract import Contract

from forkharness.adapters.artifacts import Artifact
from forkharness.core.ledger import LedgerFacade, ImpersonatedAccount
from forkharness.core.logger import get_logger
from forkharness.core.position import PositionSnapshot

log = get_logger(__name__)


class StrategyFacade:
    """
    The interface every strategy under test is driven through. Signing calls
    take the ImpersonatedAccount they are sent as.
    """
    address: str

    def initialize(self, account: ImpersonatedAccount, *params):
        """One-time setup; the contract reverts when called twice."""
        raise NotImplementedError

    def set_whitelisted_cdo(self, account: ImpersonatedAccount, cdo: str):
        """Authorizes ``cdo`` to deposit and withdraw. Idempotent."""
        raise NotImplementedError

    def deposit(self, account: ImpersonatedAccount, amount: int):
        """Pulls ``amount`` of the accepted asset from the caller and mints shares."""
        raise NotImplementedError

    def boost_rewards(self, account: ImpersonatedAccount, n: int):
        """Runs a reward-compounding pass doing at most ``n`` units of work."""
        raise NotImplementedError

    def get_depositor_position(self) -> PositionSnapshot:
        """Latest collateral/debt/reward state, including third-party effects."""
        raise NotImplementedError


class Web3StrategyFacade(StrategyFacade):
    def __init__(self, ledger: LedgerFacade, address: str, abi: list):
        self.ledger = ledger
        self.address = Web3.to_checksum_address(address)
        self.contract: Contract = ledger.w3.eth.contract(address=self.address, abi=abi)
        self._position_names = _output_names(abi, "getDepositorPosition")

    def initialize(self, account: ImpersonatedAccount, *params):
        self.ledger.transact(account, self.contract.functions.initialize(*params))
        log.info("STRATEGY_INITIALIZED", strategy=self.address, params=[str(p) for p in params])

    def set_whitelisted_cdo(self, account: ImpersonatedAccount, cdo: str):
        self.ledger.transact(account, self.contract.functions.setWhitelistedCDO(Web3.to_checksum_address(cdo)))
        log.info("STRATEGY_CDO_WHITELISTED", strategy=self.address, cdo=cdo)

    def deposit(self, account: ImpersonatedAccount, amount: int):
        return self.ledger.transact(account, self.contract.functions.deposit(amount))

    def boost_rewards(self, account: ImpersonatedAccount, n: int):
        return self.ledger.transact(account, self.contract.functions.boostRewards(n))

    def get_depositor_position(self) -> PositionSnapshot:
        result = self.ledger.call(self.contract.functions.getDepositorPosition())
        return PositionSnapshot.from_result(result, self._position_names)


def _output_names(abi: list, fn_name: str) -> list:
    for entry in abi:
        if entry.get("type") == "function" and entry.get("name") == fn_name:
            return [o.get("name", "") for o in entry.get("outputs", [])]
    return []


def deploy_behind_proxy(
    ledger: LedgerFacade,
    deployer: ImpersonatedAccount,
    proxy_admin: ImpersonatedAccount,
    logic: Artifact,
    proxy: Artifact,
) -> Web3StrategyFacade:
    """
    Deploys ``logic`` behind a TransparentUpgradeableProxy with empty init
    data and returns the strategy bound at the proxy address. The caller still
    has to ``initialize`` it through the proxy.
    """
    logic_contract = ledger.deploy(deployer, logic.abi, logic.bytecode)
    proxy_contract = ledger.deploy(deployer, proxy.abi, proxy.bytecode, logic_contract.address, proxy_admin.address, b"")
    log.info("STRATEGY_PROXY_DEPLOYED", logic=logic_contract.address, proxy=proxy_contract.address,
             contract=logic.contract_name)
    return Web3StrategyFacade(ledger, proxy_contract.address, logic.abi)
