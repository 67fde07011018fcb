# /forkharness/core/scenario.py
# Drives one strategy scenario at a time against a forked ledger.
# Shared setup runs once per suite in provision(); every scenario is bracketed
# by a ledger checkpoint so it starts from the provisioned state.

from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel

from forkharness.core.errors import HarnessError, ProvisioningError
from forkharness.core.ledger import Checkpoint, ImpersonatedAccount, LedgerFacade
from forkharness.core.logger import get_logger, bind_scenario, unbind_scenario, SCENARIOS_FINISHED
from forkharness.core.position import PositionSnapshot

log = get_logger(__name__)


class ScenarioState(str, Enum):
    UNINITIALIZED = "uninitialized"
    PROVISIONED = "provisioned"
    EXECUTED = "executed"
    VERIFIED = "verified"
    REVERTED = "reverted"


@dataclass
class Approval:
    token: Any
    spender: str
    amount: int


@dataclass
class FundingConfig:
    """Moves ``amount`` of ``token`` from an impersonated whale to the test user."""
    whale: str
    token: Any
    amount: int


@dataclass
class SwapConfig:
    """
    Exact-output acquisition of a hard-to-source asset. ``route`` is in
    router order for exact output: received token first, paid token last.
    """
    router: Any
    token_out: Any
    token_in: Any
    route: Sequence[str]
    fees: Sequence[int]
    amount_out: int
    amount_in_max: int
    check_pools: bool = False


@dataclass
class ProvisionConfig:
    strategy: Any
    owner: ImpersonatedAccount
    user: ImpersonatedAccount
    initialize_params: Optional[tuple] = None
    funding: Optional[FundingConfig] = None
    approvals: List[Approval] = field(default_factory=list)
    swap: Optional[SwapConfig] = None
    whitelist_user: bool = True


class Expectations(BaseModel):
    """Checks against the position captured after the action (and its delta from before)."""
    equals: Dict[str, int] = {}
    deltas: Dict[str, int] = {}
    unchanged: List[str] = []
    non_negative: bool = False


class ScenarioRunner:
    """
    State machine per scenario:
        UNINITIALIZED -> PROVISIONED -> EXECUTED -> VERIFIED -> REVERTED

    ``end_scenario()`` must run on every exit path; ``scenario()`` wraps
    begin/end for callers that want the guarantee from a ``with`` block.
    """
    def __init__(self, ledger: LedgerFacade):
        self.ledger = ledger
        self.config: Optional[ProvisionConfig] = None
        self.state = ScenarioState.UNINITIALIZED
        self.name: Optional[str] = None
        self.checkpoint: Optional[Checkpoint] = None
        self.before: Optional[PositionSnapshot] = None
        self.after: Optional[PositionSnapshot] = None
        self.whales: Dict[str, ImpersonatedAccount] = {}

    # --- Suite setup ---

    def provision(self, config: ProvisionConfig):
        """One-time shared setup. Any failure here is fatal to the whole suite."""
        if self.config is not None:
            raise ProvisioningError("Runner is already provisioned")
        try:
            self._provision(config)
        except (HarnessError, AssertionError, ValueError) as e:
            log.critical("SUITE_PROVISIONING_FAILED", error=str(e))
            raise ProvisioningError(f"Suite provisioning failed: {e}") from e
        self.config = config
        self.state = ScenarioState.PROVISIONED
        log.info("SUITE_PROVISIONED", strategy=config.strategy.address, user=config.user.address)

    def _provision(self, config: ProvisionConfig):
        if config.initialize_params is not None:
            config.strategy.initialize(config.owner, *config.initialize_params)

        if config.funding is not None:
            funding = config.funding
            whale = self.ledger.impersonate(funding.whale)
            self.whales[whale.address] = whale
            if funding.token.balance_of(whale.address) < funding.amount:
                raise ProvisioningError(
                    f"Whale {whale.address} holds less than {funding.amount}; find another whale or reduce the amount"
                )
            funding.token.transfer(whale, config.user.address, funding.amount)

        for approval in config.approvals:
            approval.token.approve(config.user, approval.spender, approval.amount)

        if config.swap is not None:
            self._acquire_by_swap(config.user, config.swap)

        if config.whitelist_user:
            config.strategy.set_whitelisted_cdo(config.owner, config.user.address)

    def _acquire_by_swap(self, user: ImpersonatedAccount, swap: SwapConfig):
        if swap.check_pools:
            # exact-output routes are reversed, but pools are symmetric in token order
            for token_a, token_b, fee in zip(swap.route, swap.route[1:], swap.fees):
                if swap.router.get_pool(token_a, token_b, fee) is None:
                    raise ProvisioningError(f"No pool for {token_a}/{token_b} at fee tier {fee}")

        out_before = swap.token_out.balance_of(user.address)
        in_before = swap.token_in.balance_of(user.address)
        swap.router.swap_exact_output(user, swap.route, swap.fees, swap.amount_out, swap.amount_in_max)
        received = swap.token_out.balance_of(user.address) - out_before
        spent = in_before - swap.token_in.balance_of(user.address)

        _expect(received == swap.amount_out, f"exact-output swap: expected to receive {swap.amount_out}, actual {received}")
        _expect(spent <= swap.amount_in_max, f"exact-output swap: spent {spent}, above the ceiling of {swap.amount_in_max}")
        log.info("EXACT_OUTPUT_SWAP_SETTLED", received=received, spent=spent)

    # --- Per-scenario lifecycle ---

    def begin_scenario(self, name: str = "scenario") -> Checkpoint:
        if self.config is None:
            raise ProvisioningError("begin_scenario() before provision()")
        self.checkpoint = self.ledger.snapshot()
        self.name = name
        bind_scenario(name)
        self.before = None
        self.after = None
        self.state = ScenarioState.PROVISIONED
        log.info("SCENARIO_STARTED", snapshot_id=self.checkpoint.snapshot_id)
        return self.checkpoint

    def run_action(self, action: Callable[[ProvisionConfig], Any], capture_position: bool = True) -> Any:
        """
        Runs ``action(config)`` and returns its result. With ``capture_position``
        the strategy position is read immediately before and after.
        """
        self._require(ScenarioState.PROVISIONED, "run_action")
        strategy = self.config.strategy
        if capture_position:
            self.before = strategy.get_depositor_position()
        result = action(self.config)
        if capture_position:
            self.after = strategy.get_depositor_position()
        self.state = ScenarioState.EXECUTED
        log.info("SCENARIO_ACTION_EXECUTED",
                 before=self.before.as_dict() if self.before else None,
                 after=self.after.as_dict() if self.after else None)
        return result

    def verify(self, expectations: Expectations):
        self._require(ScenarioState.EXECUTED, "verify")
        if self.after is None:
            raise AssertionError("No position was captured; run the action with capture_position=True")

        for name, expected in expectations.equals.items():
            actual = self._field(self.after, name)
            _expect(actual == expected, f"{name}: expected {expected}, actual {actual}")

        if expectations.deltas or expectations.unchanged:
            delta = self.after.delta(self.before)
            for name, expected in expectations.deltas.items():
                self._field(self.after, name)
                _expect(delta[name] == expected, f"{name} delta: expected {expected}, actual {delta[name]}")
            for name in expectations.unchanged:
                self._field(self.after, name)
                _expect(delta[name] == 0, f"{name}: expected unchanged {self.before[name]}, actual {self.after[name]}")

        if expectations.non_negative:
            _expect(self.after.is_well_formed(), f"position is not well formed: {self.after.as_dict()}")

        self.state = ScenarioState.VERIFIED
        log.info("SCENARIO_VERIFIED")

    def end_scenario(self):
        """Rolls the ledger back to the scenario's checkpoint. Safe on every exit path."""
        checkpoint, self.checkpoint = self.checkpoint, None
        outcome = "passed" if self.state == ScenarioState.VERIFIED else "unverified"
        try:
            if checkpoint is not None:
                self.ledger.restore(checkpoint)
        finally:
            self.state = ScenarioState.REVERTED
            SCENARIOS_FINISHED.labels(outcome).inc()
            log.info("SCENARIO_REVERTED", outcome=outcome)
            unbind_scenario()

    @contextmanager
    def scenario(self, name: str = "scenario"):
        self.begin_scenario(name)
        failed = False
        try:
            yield self
        except Exception as e:
            failed = True
            log.error("SCENARIO_FAILED", error=str(e), error_type=type(e).__name__)
            raise
        finally:
            try:
                self.end_scenario()
            except HarnessError as cleanup:
                # the scenario's own failure is the one that propagates
                if not failed:
                    raise
                log.error("SCENARIO_CLEANUP_FAILED", error=str(cleanup), error_type=type(cleanup).__name__)

    def _require(self, state: ScenarioState, step: str):
        if self.state != state:
            raise RuntimeError(f"{step}() is not allowed in state {self.state.value}")

    @staticmethod
    def _field(snapshot: PositionSnapshot, name: str) -> int:
        try:
            return snapshot[name]
        except KeyError:
            raise AssertionError(f"position has no field {name!r}; fields are {list(snapshot.names)}") from None


def _expect(condition: bool, message: str):
    if not condition:
        raise AssertionError(message)


# --- Reusable actions ---

def deposit_action(token, amount: int) -> Callable[[ProvisionConfig], Any]:
    """Approve the strategy for ``amount`` of ``token``, then deposit it as the test user."""
    def action(config: ProvisionConfig):
        token.approve(config.user, config.strategy.address, amount)
        return config.strategy.deposit(config.user, amount)
    return action


def boost_rewards_action(n: int) -> Callable[[ProvisionConfig], Any]:
    def action(config: ProvisionConfig):
        return config.strategy.boost_rewards(config.user, n)
    return action
