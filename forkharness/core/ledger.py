# /forkharness/core/ledger.py
# The only module that talks to the fork backend's test RPC namespace.
# Works against hardhat and anvil nodes (anvil also answers the hardhat_* aliases).

from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict
from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import Web3Exception

from forkharness.core.config import settings
from forkharness.core.decorators import retriable_read_call
from forkharness.core.errors import ExternalCallError, StaleCheckpointError
from forkharness.core.logger import (
    get_logger, CHECKPOINTS_TAKEN, CHECKPOINTS_RESTORED, STALE_CHECKPOINTS, EXTERNAL_CALL_FAILURES,
)

log = get_logger(__name__)


class ImpersonatedAccount(BaseModel):
    """
    Capability to sign as ``address`` on the fork. Every state-changing call
    made through the ledger requires one; there is no implicit current signer.
    """
    address: str
    native_balance: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class Checkpoint(BaseModel):
    """Opaque backend snapshot id. Restorable exactly once."""
    snapshot_id: str
    sequence: int

    model_config = ConfigDict(frozen=True)


class LedgerFacade:
    """
    Balance queries, impersonation, balance injection and checkpoint/restore
    over a forked chain.

    At most one checkpoint is live at a time: ``snapshot()`` refuses to take a
    second one until the first is restored, and ``restore()`` only accepts the
    live checkpoint.
    """
    def __init__(self, w3: Web3, namespace: str = None, gas_funding_wei: int = None, timeout: int = None):
        self.w3 = w3
        self.namespace = namespace or settings.LEDGER_RPC_NAMESPACE
        self.gas_funding_wei = settings.GAS_FUNDING_WEI if gas_funding_wei is None else gas_funding_wei
        self.timeout = timeout or settings.RPC_TIMEOUT_SECONDS
        self._live: Optional[Checkpoint] = None
        self._sequence = 0
        self._impersonated: Set[str] = set()

    @classmethod
    def connect(cls, rpc_url: str = None, **kwargs) -> "LedgerFacade":
        url = rpc_url or settings.fork_rpc_url
        if not url:
            raise ValueError("No fork RPC URL configured (FORK_RPC_URL).")
        timeout = kwargs.get("timeout") or settings.RPC_TIMEOUT_SECONDS
        w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}))
        log.info("LEDGER_CONNECTING", namespace=kwargs.get("namespace") or settings.LEDGER_RPC_NAMESPACE)
        return cls(w3, **kwargs)

    @property
    def live_checkpoint(self) -> Optional[Checkpoint]:
        return self._live

    @retriable_read_call
    def _read_request(self, method: str, params: List[Any]) -> Dict[str, Any]:
        return self.w3.provider.make_request(method, params)

    def _rpc(self, method: str, params: List[Any], read_only: bool = False) -> Any:
        request = self._read_request if read_only else self.w3.provider.make_request
        try:
            response: Dict[str, Any] = request(method, params)
        except RequestException as e:
            EXTERNAL_CALL_FAILURES.labels("ledger").inc()
            log.error("LEDGER_RPC_UNREACHABLE", method=method, error=str(e))
            raise ExternalCallError("ledger", f"{method} failed: {e}") from e
        if response.get("error"):
            EXTERNAL_CALL_FAILURES.labels("ledger").inc()
            log.error("LEDGER_RPC_ERROR", method=method, error=response["error"])
            raise ExternalCallError("ledger", f"{method} failed: {response['error']}")
        return response.get("result")

    # --- Accounts ---

    def impersonate(self, address: str, fund_gas: bool = True) -> ImpersonatedAccount:
        address = Web3.to_checksum_address(address)
        self._rpc(f"{self.namespace}_impersonateAccount", [address])
        self._impersonated.add(address)
        native_balance = None
        if fund_gas:
            self.set_native_balance(address, self.gas_funding_wei)
            native_balance = self.gas_funding_wei
        log.info("ACCOUNT_IMPERSONATED", address=address, native_balance=native_balance)
        return ImpersonatedAccount(address=address, native_balance=native_balance)

    def release(self, account: ImpersonatedAccount):
        if account.address not in self._impersonated:
            return
        self._rpc(f"{self.namespace}_stopImpersonatingAccount", [account.address])
        self._impersonated.discard(account.address)
        log.info("ACCOUNT_RELEASED", address=account.address)

    def close(self):
        """Releases every account still impersonated."""
        for address in sorted(self._impersonated):
            self.release(ImpersonatedAccount(address=address))

    def local_account(self, index: int) -> ImpersonatedAccount:
        """A node-managed dev account, already unlocked by the backend."""
        accounts = self._rpc("eth_accounts", [], read_only=True)
        if index >= len(accounts):
            raise ExternalCallError("ledger", f"Backend exposes only {len(accounts)} unlocked accounts")
        return ImpersonatedAccount(address=Web3.to_checksum_address(accounts[index]))

    def set_native_balance(self, address: str, amount: int):
        self._rpc(f"{self.namespace}_setBalance", [Web3.to_checksum_address(address), hex(amount)])
        log.debug("NATIVE_BALANCE_SET", address=address, amount=amount)

    def native_balance(self, address: str) -> int:
        return int(self._rpc("eth_getBalance", [Web3.to_checksum_address(address), "latest"], read_only=True), 16)

    def reset_fork(self, upstream_url: str, block_number: int = None):
        """Re-forks from ``upstream_url`` at ``block_number``. Drops every checkpoint and impersonation."""
        forking = {"jsonRpcUrl": upstream_url}
        if block_number is not None:
            forking["blockNumber"] = block_number
        self._rpc(f"{self.namespace}_reset", [{"forking": forking}])
        self._live = None
        self._impersonated.clear()
        log.info("FORK_RESET", block_number=block_number)

    # --- Checkpoints ---

    def snapshot(self) -> Checkpoint:
        if self._live is not None:
            STALE_CHECKPOINTS.inc()
            raise StaleCheckpointError(
                f"Checkpoint {self._live.snapshot_id} is still outstanding; restore it first"
            )
        snapshot_id = self._rpc("evm_snapshot", [])
        self._sequence += 1
        self._live = Checkpoint(snapshot_id=str(snapshot_id), sequence=self._sequence)
        CHECKPOINTS_TAKEN.inc()
        log.debug("CHECKPOINT_TAKEN", snapshot_id=self._live.snapshot_id, sequence=self._sequence)
        return self._live

    def restore(self, checkpoint: Checkpoint):
        if checkpoint is None or checkpoint != self._live:
            snapshot_id = checkpoint.snapshot_id if checkpoint is not None else None
            STALE_CHECKPOINTS.inc()
            log.error("STALE_CHECKPOINT_REJECTED", snapshot_id=snapshot_id,
                      live=self._live.snapshot_id if self._live else None)
            raise StaleCheckpointError(f"Checkpoint {snapshot_id} is not the live checkpoint")

        # spent whatever the backend answers
        self._live = None
        reverted = self._rpc("evm_revert", [checkpoint.snapshot_id])
        if reverted is not True:
            STALE_CHECKPOINTS.inc()
            log.error("CHECKPOINT_REVERT_REFUSED", snapshot_id=checkpoint.snapshot_id)
            raise StaleCheckpointError(f"Backend refused to revert to {checkpoint.snapshot_id}")
        CHECKPOINTS_RESTORED.inc()
        log.debug("CHECKPOINT_RESTORED", snapshot_id=checkpoint.snapshot_id, sequence=checkpoint.sequence)

    # --- Contract calls ---

    def transact(self, account: ImpersonatedAccount, call, target: str = None):
        """
        Sends ``call`` (a bound contract function or constructor) signed as
        ``account`` and waits for the receipt. Sent exactly once.

        Raises:
            ExternalCallError: the call reverted or the backend failed.
        """
        if not isinstance(account, ImpersonatedAccount):
            raise TypeError("transact() needs an ImpersonatedAccount to sign with")
        target = target or f"{getattr(call, 'address', None)}.{getattr(call, 'fn_name', 'constructor')}"
        try:
            tx_hash = call.transact({"from": account.address})
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.timeout)
        except (Web3Exception, ValueError, RequestException) as e:
            EXTERNAL_CALL_FAILURES.labels(target).inc()
            log.error("EXTERNAL_CALL_FAILED", target=target, sender=account.address, error=str(e))
            raise ExternalCallError(target, str(e)) from e
        if receipt["status"] != 1:
            EXTERNAL_CALL_FAILURES.labels(target).inc()
            log.error("EXTERNAL_CALL_REVERTED", target=target, tx_hash=Web3.to_hex(tx_hash))
            raise ExternalCallError(target, f"transaction {Web3.to_hex(tx_hash)} reverted")
        log.debug("EXTERNAL_CALL_MINED", target=target, gas_used=receipt["gasUsed"])
        return receipt

    @retriable_read_call
    def _call(self, fn):
        return fn.call()

    def call(self, fn, target: str = None):
        """Read-only contract call. Transient network errors are retried."""
        target = target or f"{getattr(fn, 'address', None)}.{getattr(fn, 'fn_name', '?')}"
        try:
            return self._call(fn)
        except (Web3Exception, ValueError, RequestException) as e:
            EXTERNAL_CALL_FAILURES.labels(target).inc()
            log.error("EXTERNAL_READ_FAILED", target=target, error=str(e))
            raise ExternalCallError(target, str(e)) from e

    def deploy(self, account: ImpersonatedAccount, abi: list, bytecode: str, *args):
        """Deploys a contract from compiled artifacts and returns it bound at its address."""
        factory = self.w3.eth.contract(abi=abi, bytecode=bytecode)
        receipt = self.transact(account, factory.constructor(*args), target="deploy")
        address = receipt["contractAddress"]
        log.info("CONTRACT_DEPLOYED", address=address, deployer=account.address)
        return self.w3.eth.contract(address=address, abi=abi)
