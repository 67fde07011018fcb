# /forkharness/adapters/router.py
from typing import Sequence

from web3 import Web3
from web3.contract import Contract

from forkharness.abis.uniswap_v3 import SWAPPER_ABI, UNISWAP_V3_FACTORY_ABI
from forkharness.core.ledger import LedgerFacade, ImpersonatedAccount
from forkharness.core.logger import get_logger
from forkharness.core.path import encode_path

log = get_logger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class SwapAdapter:
    """
    Exact-output multi-hop swaps through a swapper contract sitting in front
    of a Uniswap V3 router.

    Exact-output paths run backwards: ``route[0]`` is the token received and
    ``route[-1]`` the token paid.
    """
    def __init__(self, ledger: LedgerFacade, swapper_address: str, factory_address: str = None):
        self.ledger = ledger
        self.address = Web3.to_checksum_address(swapper_address)
        self.swapper: Contract = ledger.w3.eth.contract(address=self.address, abi=SWAPPER_ABI)
        self.factory: Contract | None = None
        if factory_address:
            self.factory = ledger.w3.eth.contract(
                address=Web3.to_checksum_address(factory_address), abi=UNISWAP_V3_FACTORY_ABI
            )

    def get_pool(self, token_a: str, token_b: str, fee: int) -> str | None:
        """Pool address for the pair and fee tier, or ``None`` if the venue has none."""
        if self.factory is None:
            raise ValueError("SwapAdapter was built without a factory address")
        pool = self.ledger.call(self.factory.functions.getPool(
            Web3.to_checksum_address(token_a), Web3.to_checksum_address(token_b), fee
        ))
        return None if int(pool, 16) == 0 else Web3.to_checksum_address(pool)

    def swap_exact_output(
        self,
        account: ImpersonatedAccount,
        route: Sequence[str],
        fees: Sequence[int],
        amount_out: int,
        amount_in_max: int,
    ):
        path = encode_path(route, fees)
        token_in = Web3.to_checksum_address(route[-1])
        log.info("EXACT_OUTPUT_SWAP_REQUESTED", path="0x" + path.hex(), amount_out=amount_out,
                 amount_in_max=amount_in_max, sender=account.address)
        return self.ledger.transact(
            account, self.swapper.functions.swapExactOutputMultihop(token_in, path, amount_out, amount_in_max)
        )
