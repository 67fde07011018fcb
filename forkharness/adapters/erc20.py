# /forkharness/adapters/erc20.py
from web3 import Web3
from web3.contract import Contract

from forkharness.abis.erc20 import ERC20_ABI
from forkharness.core.ledger import LedgerFacade, ImpersonatedAccount
from forkharness.core.logger import get_logger

log = get_logger(__name__)


class Erc20Adapter:
    def __init__(self, ledger: LedgerFacade, token_address: str):
        self.ledger = ledger
        self.address = Web3.to_checksum_address(token_address)
        self.contract: Contract = ledger.w3.eth.contract(address=self.address, abi=ERC20_ABI)

    def balance_of(self, owner: str) -> int:
        return self.ledger.call(self.contract.functions.balanceOf(Web3.to_checksum_address(owner)))

    def decimals(self) -> int:
        return self.ledger.call(self.contract.functions.decimals())

    def allowance(self, owner: str, spender: str) -> int:
        return self.ledger.call(
            self.contract.functions.allowance(Web3.to_checksum_address(owner), Web3.to_checksum_address(spender))
        )

    def approve(self, account: ImpersonatedAccount, spender: str, amount: int):
        self.ledger.transact(account, self.contract.functions.approve(Web3.to_checksum_address(spender), amount))
        log.info("TOKEN_APPROVED", token=self.address, owner=account.address, spender=spender, amount=amount)

    def transfer(self, account: ImpersonatedAccount, recipient: str, amount: int):
        self.ledger.transact(account, self.contract.functions.transfer(Web3.to_checksum_address(recipient), amount))
        log.info("TOKEN_TRANSFERRED", token=self.address, sender=account.address, recipient=recipient, amount=amount)
