import pytest
from requests.exceptions import ConnectionError as RequestsConnectionError
from web3.exceptions import ContractLogicError

from forkharness.adapters.mock import MockChain, MockProvider, MockToken, mock_ledger
from forkharness.core.config import DEFAULT_GAS_FUNDING_WEI
from forkharness.core.errors import ExternalCallError, StaleCheckpointError
from forkharness.core.ledger import Checkpoint, ImpersonatedAccount, LedgerFacade
from forkharness.core.logger import CHECKPOINTS_TAKEN

from constants import DAI_ADDR, DAI_WHALE


# --- Impersonation ---

def test_impersonate_unlocks_and_funds_gas(chain, ledger):
    whale = ledger.impersonate(DAI_WHALE.lower())

    assert whale.address == DAI_WHALE
    assert whale.native_balance == DEFAULT_GAS_FUNDING_WEI
    assert DAI_WHALE in chain.impersonated
    assert ledger.native_balance(DAI_WHALE) == 0xFFFFFFFFFFFFFFFF
    assert ledger.w3.provider.requests[:2] == [
        ("hardhat_impersonateAccount", [DAI_WHALE]),
        ("hardhat_setBalance", [DAI_WHALE, "0xffffffffffffffff"]),
    ]


def test_impersonate_without_gas(chain, ledger):
    whale = ledger.impersonate(DAI_WHALE, fund_gas=False)

    assert whale.native_balance is None
    assert ledger.native_balance(DAI_WHALE) == 0


def test_anvil_namespace(chain):
    ledger = mock_ledger(chain, namespace="anvil")
    ledger.impersonate(DAI_WHALE)

    assert ledger.w3.provider.requests[0] == ("anvil_impersonateAccount", [DAI_WHALE])


def test_release_and_close(chain, ledger):
    whale = ledger.impersonate(DAI_WHALE)
    other = ledger.impersonate("0x00000000000000000000000000000000000000aa")

    ledger.release(whale)
    assert DAI_WHALE not in chain.impersonated
    # releasing twice is a no-op
    ledger.release(whale)

    ledger.close()
    assert other.address not in chain.impersonated
    assert chain.impersonated == set()


def test_local_accounts_are_capabilities(chain, ledger):
    owner = ledger.local_account(0)

    assert isinstance(owner, ImpersonatedAccount)
    assert owner.address == chain.accounts[0]
    with pytest.raises(ExternalCallError):
        ledger.local_account(len(chain.accounts))


def test_set_native_balance(ledger):
    ledger.set_native_balance(DAI_WHALE, 12345)
    assert ledger.native_balance(DAI_WHALE) == 12345


def test_backend_errors_surface_as_external_call_errors(ledger):
    with pytest.raises(ExternalCallError, match="not found"):
        ledger._rpc("hardhat_mine", [])


# --- Checkpoints ---

def test_restore_rolls_back_world_state(chain, ledger):
    dai = MockToken(chain, DAI_ADDR, "DAI")
    dai.mint(DAI_WHALE, 100)

    checkpoint = ledger.snapshot()
    dai.mint(DAI_WHALE, 50)
    ledger.set_native_balance(DAI_WHALE, 1)
    ledger.restore(checkpoint)

    assert dai.balance_of(DAI_WHALE) == 100
    assert ledger.native_balance(DAI_WHALE) == 0
    assert ledger.live_checkpoint is None


def test_checkpoint_cannot_be_restored_twice(ledger):
    checkpoint = ledger.snapshot()
    ledger.restore(checkpoint)

    with pytest.raises(StaleCheckpointError):
        ledger.restore(checkpoint)


def test_overlapping_snapshot_is_rejected(ledger):
    first = ledger.snapshot()

    with pytest.raises(StaleCheckpointError, match="still outstanding"):
        ledger.snapshot()

    # the outstanding checkpoint is unaffected
    assert ledger.live_checkpoint == first
    ledger.restore(first)


def test_missing_checkpoint_is_rejected(ledger):
    with pytest.raises(StaleCheckpointError):
        ledger.restore(None)

    live = ledger.snapshot()
    with pytest.raises(StaleCheckpointError):
        ledger.restore(None)
    assert ledger.live_checkpoint == live


def test_foreign_checkpoint_is_rejected(ledger):
    live = ledger.snapshot()

    with pytest.raises(StaleCheckpointError):
        ledger.restore(Checkpoint(snapshot_id="0x99", sequence=99))
    assert ledger.live_checkpoint == live


def test_backend_refusal_is_stale_and_frees_the_next_snapshot(chain, ledger):
    checkpoint = ledger.snapshot()
    # someone reverts behind the facade's back, invalidating the backend id
    chain.revert(checkpoint.snapshot_id)

    with pytest.raises(StaleCheckpointError, match="refused"):
        ledger.restore(checkpoint)

    fresh = ledger.snapshot()
    assert fresh.sequence == checkpoint.sequence + 1
    ledger.restore(fresh)


def test_checkpoints_are_counted(ledger):
    before = CHECKPOINTS_TAKEN._value.get()
    ledger.restore(ledger.snapshot())
    assert CHECKPOINTS_TAKEN._value.get() == before + 1


def test_reset_fork_drops_checkpoints_and_impersonations(chain, ledger):
    ledger.impersonate(DAI_WHALE)
    ledger.snapshot()

    ledger.reset_fork("https://archive.example", 14_000_000)

    assert ledger.live_checkpoint is None
    assert chain.impersonated == set()
    assert chain.forked_from == {"jsonRpcUrl": "https://archive.example", "blockNumber": 14_000_000}
    ledger.restore(ledger.snapshot())


# --- Contract calls ---

class DummyEth:
    def __init__(self, status=1):
        self.status = status

    def wait_for_transaction_receipt(self, tx_hash, timeout=None):
        return {"status": self.status, "gasUsed": 21000, "contractAddress": None}


class DummyW3:
    def __init__(self, chain, status=1):
        self.provider = MockProvider(chain)
        self.eth = DummyEth(status)


class DummyFunction:
    address = "0x00000000000000000000000000000000000000c0"
    fn_name = "deposit"

    def __init__(self, error=None, result=None):
        self.error = error
        self.result = result
        self.sent = []

    def transact(self, tx):
        if self.error:
            raise self.error
        self.sent.append(tx)
        return b"\x12" * 32

    def call(self):
        if self.error:
            raise self.error
        return self.result


def _ledger(status=1):
    return LedgerFacade(DummyW3(MockChain(), status=status))


def test_transact_signs_with_the_capability():
    ledger = _ledger()
    fn = DummyFunction()
    account = ImpersonatedAccount(address=DAI_WHALE)

    receipt = ledger.transact(account, fn)

    assert receipt["status"] == 1
    assert fn.sent == [{"from": DAI_WHALE}]


def test_transact_requires_an_impersonated_account():
    with pytest.raises(TypeError):
        _ledger().transact(DAI_WHALE, DummyFunction())


def test_reverted_receipt_raises():
    with pytest.raises(ExternalCallError, match="reverted"):
        _ledger(status=0).transact(ImpersonatedAccount(address=DAI_WHALE), DummyFunction())


def test_contract_logic_error_is_not_retried():
    fn = DummyFunction(error=ContractLogicError("execution reverted: Only CDO"))

    with pytest.raises(ExternalCallError, match="Only CDO") as excinfo:
        _ledger().transact(ImpersonatedAccount(address=DAI_WHALE), fn)
    assert excinfo.value.target.endswith(".deposit")
    assert fn.sent == []


def test_read_call_wraps_reverts():
    ledger = _ledger()
    assert ledger.call(DummyFunction(result=7)) == 7
    with pytest.raises(ExternalCallError):
        ledger.call(DummyFunction(error=ContractLogicError("execution reverted")))


class FlakyProvider(MockProvider):
    def __init__(self, chain, failures):
        super().__init__(chain)
        self.failures = failures

    def make_request(self, method, params):
        if self.failures:
            self.failures -= 1
            raise RequestsConnectionError("connection reset by peer")
        return super().make_request(method, params)


class FlakyW3:
    def __init__(self, chain, failures):
        self.provider = FlakyProvider(chain, failures)


def test_reads_are_retried_on_transient_errors(monkeypatch):
    monkeypatch.setattr(LedgerFacade._read_request.retry, "sleep", lambda seconds: None)
    ledger = LedgerFacade(FlakyW3(MockChain(), failures=2))

    assert ledger.native_balance(DAI_WHALE) == 0


def test_writes_are_sent_once():
    ledger = LedgerFacade(FlakyW3(MockChain(), failures=1))

    with pytest.raises(ExternalCallError, match="connection reset"):
        ledger.set_native_balance(DAI_WHALE, 1)
    assert ledger.w3.provider.requests == []
