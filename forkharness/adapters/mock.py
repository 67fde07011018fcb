# /forkharness/adapters/mock.py
# In-memory stand-ins for the fork backend and the external contracts.
# Every piece of contract state lives in MockChain.state, so evm_snapshot /
# evm_revert through MockProvider roll back tokens, strategies and pools
# together, the way a forked node does.

import copy
import itertools
from typing import Any, Dict, List, Optional, Sequence, Tuple

from web3 import Web3

from forkharness.adapters.strategy import StrategyFacade
from forkharness.core.errors import ExternalCallError
from forkharness.core.ledger import ImpersonatedAccount, LedgerFacade
from forkharness.core.logger import get_logger
from forkharness.core.path import decode_path, encode_path
from forkharness.core.position import PositionSnapshot

log = get_logger(__name__)

FEE_DENOMINATOR = 1_000_000


def mock_address(n: int) -> str:
    return Web3.to_checksum_address(f"0x{n:040x}")


class MockChain:
    """
    World state plus hardhat snapshot semantics: ids are hex strings, and
    reverting to an id discards it and every snapshot taken after it.
    """
    def __init__(self, num_accounts: int = 10):
        self.state: Dict[str, Dict] = {"native": {}, "balances": {}, "allowances": {}, "contracts": {}}
        self.accounts: List[str] = [mock_address(0xACC0 + i) for i in range(num_accounts)]
        self.impersonated: set = set()
        self.tokens: Dict[str, "MockToken"] = {}
        self.forked_from: Optional[Dict[str, Any]] = None
        self._snapshots: List[Tuple[str, Dict]] = []
        self._ids = itertools.count(1)

    def snapshot(self) -> str:
        snapshot_id = hex(next(self._ids))
        self._snapshots.append((snapshot_id, copy.deepcopy(self.state)))
        return snapshot_id

    def revert(self, snapshot_id: str) -> bool:
        for index, (sid, saved) in enumerate(self._snapshots):
            if sid == snapshot_id:
                self.state = saved
                del self._snapshots[index:]
                return True
        return False

    def require_signer(self, account: ImpersonatedAccount, target: str):
        if not isinstance(account, ImpersonatedAccount):
            raise TypeError("Contract calls must be signed with an ImpersonatedAccount")
        if account.address not in self.impersonated and account.address not in self.accounts:
            raise ExternalCallError(target, f"sender account not recognized: {account.address}")

    def contract_state(self, address: str) -> Dict[str, Any]:
        return self.state["contracts"].setdefault(address, {})


class MockProvider:
    """Answers the subset of the JSON-RPC surface LedgerFacade uses."""
    def __init__(self, chain: MockChain):
        self.chain = chain
        self.requests: List[Tuple[str, list]] = []
        self._ids = itertools.count(1)

    def make_request(self, method: str, params: list) -> Dict[str, Any]:
        self.requests.append((method, list(params)))
        namespace, _, name = method.partition("_")
        chain = self.chain
        if namespace in ("hardhat", "anvil") and name == "impersonateAccount":
            chain.impersonated.add(Web3.to_checksum_address(params[0]))
            result = None
        elif namespace in ("hardhat", "anvil") and name == "stopImpersonatingAccount":
            chain.impersonated.discard(Web3.to_checksum_address(params[0]))
            result = None
        elif namespace in ("hardhat", "anvil") and name == "setBalance":
            chain.state["native"][Web3.to_checksum_address(params[0])] = int(params[1], 16)
            result = None
        elif namespace in ("hardhat", "anvil") and name == "reset":
            chain.forked_from = params[0].get("forking") if params else None
            chain.impersonated.clear()
            chain._snapshots.clear()
            result = True
        elif method == "evm_snapshot":
            result = chain.snapshot()
        elif method == "evm_revert":
            result = chain.revert(params[0])
        elif method == "eth_getBalance":
            result = hex(chain.state["native"].get(Web3.to_checksum_address(params[0]), 0))
        elif method == "eth_accounts":
            result = list(chain.accounts)
        else:
            return {"jsonrpc": "2.0", "id": next(self._ids),
                    "error": {"code": -32601, "message": f"Method {method} not found"}}
        return {"jsonrpc": "2.0", "id": next(self._ids), "result": result}


class MockWeb3:
    def __init__(self, chain: MockChain):
        self.provider = MockProvider(chain)


def mock_ledger(chain: MockChain, namespace: str = "hardhat", **kwargs) -> LedgerFacade:
    return LedgerFacade(MockWeb3(chain), namespace=namespace, **kwargs)


class MockToken:
    def __init__(self, chain: MockChain, address: str, symbol: str = "MOCK", decimals: int = 18):
        self.chain = chain
        self.address = Web3.to_checksum_address(address)
        self.symbol = symbol
        self._decimals = decimals
        chain.tokens[self.address] = self

    @property
    def _balances(self) -> Dict[str, int]:
        return self.chain.state["balances"].setdefault(self.address, {})

    @property
    def _allowances(self) -> Dict[str, Dict[str, int]]:
        return self.chain.state["allowances"].setdefault(self.address, {})

    def mint(self, holder: str, amount: int):
        holder = Web3.to_checksum_address(holder)
        self._balances[holder] = self._balances.get(holder, 0) + amount

    def balance_of(self, owner: str) -> int:
        return self._balances.get(Web3.to_checksum_address(owner), 0)

    def decimals(self) -> int:
        return self._decimals

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get(Web3.to_checksum_address(owner), {}).get(Web3.to_checksum_address(spender), 0)

    def approve(self, account: ImpersonatedAccount, spender: str, amount: int):
        self.chain.require_signer(account, f"{self.symbol}.approve")
        self._allowances.setdefault(account.address, {})[Web3.to_checksum_address(spender)] = amount

    def transfer(self, account: ImpersonatedAccount, recipient: str, amount: int):
        self.chain.require_signer(account, f"{self.symbol}.transfer")
        self.move_balance(account.address, recipient, amount, f"{self.symbol}.transfer")

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int, target: str = None):
        target = target or f"{self.symbol}.transferFrom"
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise ExternalCallError(target, "ERC20: insufficient allowance")
        self.move_balance(owner, recipient, amount, target)
        self._allowances.setdefault(Web3.to_checksum_address(owner), {})[Web3.to_checksum_address(spender)] = allowed - amount

    def move_balance(self, sender: str, recipient: str, amount: int, target: str):
        sender, recipient = Web3.to_checksum_address(sender), Web3.to_checksum_address(recipient)
        if self._balances.get(sender, 0) < amount:
            raise ExternalCallError(target, "ERC20: transfer amount exceeds balance")
        self._balances[sender] -= amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount


class MockStrategy(StrategyFacade):
    """
    Stability-pool style strategy: deposits sit in the pool, liquidations
    burn part of them and pay collateral gains, reward epochs accrue until
    ``boost_rewards`` compounds them.
    """
    POSITION_FIELDS = ("deposit", "collateral_gain", "reward_gain")

    def __init__(self, chain: MockChain, address: str, asset: MockToken, reward_per_epoch: int = 10**15,
                 pending_epochs: int = 0):
        self.chain = chain
        self.address = Web3.to_checksum_address(address)
        self.asset = asset
        self.reward_per_epoch = reward_per_epoch
        chain.contract_state(self.address).update({
            "initialized": False, "owner": None, "whitelisted": {}, "deposit": 0,
            "collateral_gain": 0, "reward_gain": 0, "pending_epochs": pending_epochs, "epochs_processed": 0,
        })

    @property
    def _state(self) -> Dict[str, Any]:
        return self.chain.contract_state(self.address)

    @property
    def epochs_processed(self) -> int:
        return self._state["epochs_processed"]

    def add_reward_epochs(self, epochs: int):
        """Time passing on the venue: more reward epochs become claimable."""
        self._state["pending_epochs"] += epochs

    def initialize(self, account: ImpersonatedAccount, owner: str = None, *params):
        self.chain.require_signer(account, "strategy.initialize")
        if self._state["initialized"]:
            raise ExternalCallError("strategy.initialize", "Initializable: contract is already initialized")
        self._state["initialized"] = True
        self._state["owner"] = Web3.to_checksum_address(owner or account.address)

    def set_whitelisted_cdo(self, account: ImpersonatedAccount, cdo: str):
        self.chain.require_signer(account, "strategy.setWhitelistedCDO")
        if account.address != self._state["owner"]:
            raise ExternalCallError("strategy.setWhitelistedCDO", "Ownable: caller is not the owner")
        self._state["whitelisted"][Web3.to_checksum_address(cdo)] = True

    def deposit(self, account: ImpersonatedAccount, amount: int):
        self.chain.require_signer(account, "strategy.deposit")
        if not self._state["whitelisted"].get(account.address):
            raise ExternalCallError("strategy.deposit", "Only CDO can call")
        self.asset.transfer_from(self.address, account.address, self.address, amount, "strategy.deposit")
        self._state["deposit"] += amount
        return amount

    def boost_rewards(self, account: ImpersonatedAccount, n: int):
        self.chain.require_signer(account, "strategy.boostRewards")
        state = self._state
        work = min(n, state["pending_epochs"])
        if state["deposit"] > 0:
            state["reward_gain"] += work * self.reward_per_epoch
        state["pending_epochs"] -= work
        state["epochs_processed"] += work
        return work

    def offset_debt(self, debt: int, collateral: int):
        """Stability pool absorbs ``debt`` of liquidated troves and earns ``collateral``."""
        state = self._state
        absorbed = min(debt, state["deposit"])
        state["deposit"] -= absorbed
        if absorbed:
            state["collateral_gain"] += collateral

    def get_depositor_position(self) -> PositionSnapshot:
        state = self._state
        return PositionSnapshot(names=self.POSITION_FIELDS,
                                values=tuple(state[name] for name in self.POSITION_FIELDS))


class MockTroveManager:
    def __init__(self, chain: MockChain, address: str, pools: Sequence[MockStrategy], troves: int = 0,
                 debt_per_trove: int = 10**18, collateral_per_trove: int = 10**15):
        self.chain = chain
        self.address = Web3.to_checksum_address(address)
        self.pools = list(pools)
        self.debt_per_trove = debt_per_trove
        self.collateral_per_trove = collateral_per_trove
        chain.contract_state(self.address)["liquidatable"] = troves

    def trove_count(self) -> int:
        return self.chain.contract_state(self.address)["liquidatable"]

    def liquidate_troves(self, account: ImpersonatedAccount, n: int):
        self.chain.require_signer(account, "troveManager.liquidateTroves")
        state = self.chain.contract_state(self.address)
        count = min(n, state["liquidatable"])
        if count == 0:
            raise ExternalCallError("troveManager.liquidateTroves", "TroveManager: nothing to liquidate")
        state["liquidatable"] -= count
        for pool in self.pools:
            pool.offset_debt(count * self.debt_per_trove, count * self.collateral_per_trove)
        return count


class MockSwapper:
    """
    Exact-output multi-hop swapper. It decodes the packed path exactly like
    the on-chain router, quotes each hop backwards from the output and pays
    out of its own reserves.
    """
    def __init__(self, chain: MockChain, address: str):
        self.chain = chain
        self.address = Web3.to_checksum_address(address)
        # (token_in, token_out, fee) -> (numerator, denominator): input units per output unit
        self.prices: Dict[Tuple[str, str, int], Tuple[int, int]] = {}

    def add_pool(self, token_in: str, token_out: str, fee: int, numerator: int = 1, denominator: int = 1):
        key = (Web3.to_checksum_address(token_in), Web3.to_checksum_address(token_out), fee)
        self.prices[key] = (numerator, denominator)
        self.prices[(key[1], key[0], fee)] = (denominator, numerator)

    def get_pool(self, token_a: str, token_b: str, fee: int) -> Optional[str]:
        key = (Web3.to_checksum_address(token_a), Web3.to_checksum_address(token_b), fee)
        if key not in self.prices:
            return None
        return Web3.to_checksum_address(Web3.keccak(text=":".join(map(str, key)))[-20:])

    def quote_exact_output(self, path: bytes, amount_out: int) -> int:
        route, fees = decode_path(path)
        amount = amount_out
        for token_out, token_in, fee in zip(route, route[1:], fees):
            if (token_in, token_out, fee) not in self.prices:
                raise ExternalCallError("swapper.swapExactOutputMultihop", f"no pool {token_in}/{token_out}/{fee}")
            if fee >= FEE_DENOMINATOR:
                raise ExternalCallError("swapper.swapExactOutputMultihop", f"fee tier {fee} is not supported")
            numerator, denominator = self.prices[(token_in, token_out, fee)]
            amount = -(-amount * numerator // denominator)
            amount = -(-amount * FEE_DENOMINATOR // (FEE_DENOMINATOR - fee))
        return amount

    def swap_exact_output_multihop(self, account: ImpersonatedAccount, token_in: str, path: bytes,
                                   amount_out: int, amount_in_max: int) -> int:
        target = "swapper.swapExactOutputMultihop"
        self.chain.require_signer(account, target)
        route, _ = decode_path(path)
        if Web3.to_checksum_address(token_in) != route[-1]:
            raise ExternalCallError(target, "tokenIn does not match the end of the path")
        amount_in = self.quote_exact_output(path, amount_out)
        if amount_in > amount_in_max:
            raise ExternalCallError(target, "Too much requested")
        self.chain.tokens[route[-1]].transfer_from(self.address, account.address, self.address, amount_in, target)
        self.chain.tokens[route[0]].move_balance(self.address, account.address, amount_out, target)
        log.debug("MOCK_SWAP_SETTLED", amount_in=amount_in, amount_out=amount_out)
        return amount_in

    def swap_exact_output(self, account: ImpersonatedAccount, route: Sequence[str], fees: Sequence[int],
                          amount_out: int, amount_in_max: int) -> int:
        return self.swap_exact_output_multihop(account, route[-1], encode_path(route, fees), amount_out, amount_in_max)
