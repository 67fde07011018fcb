# /forkharness/adapters/liquity.py
# Third-party events that change a strategy's position without the strategy acting.
from web3 import Web3
from web3.contract import Contract

from forkharness.abis.liquity import TROVE_MANAGER_ABI
from forkharness.core.ledger import LedgerFacade, ImpersonatedAccount
from forkharness.core.logger import get_logger

log = get_logger(__name__)


class TroveManagerAdapter:
    def __init__(self, ledger: LedgerFacade, trove_manager_address: str):
        self.ledger = ledger
        self.address = Web3.to_checksum_address(trove_manager_address)
        self.contract: Contract = ledger.w3.eth.contract(address=self.address, abi=TROVE_MANAGER_ABI)

    def trove_count(self) -> int:
        return self.ledger.call(self.contract.functions.getTroveOwnersCount())

    def liquidate_troves(self, account: ImpersonatedAccount, n: int):
        """Liquidates up to ``n`` undercollateralized troves, as any keeper could."""
        log.info("TROVE_LIQUIDATION_TRIGGERED", max_troves=n, keeper=account.address)
        return self.ledger.transact(account, self.contract.functions.liquidateTroves(n))
