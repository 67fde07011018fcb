# /forkharness/core/errors.py
# Error taxonomy shared by the codec, the ledger and the scenario runner.
# Verification mismatches are plain AssertionError so pytest reports them natively.


class HarnessError(Exception):
    pass


class InvalidRouteError(HarnessError, ValueError):
    """Route and fee tiers cannot be encoded (length mismatch, bad address, fee out of range)."""


class MalformedPathError(HarnessError, ValueError):
    """Byte string is not a packed ``address (fee address)*`` path."""


class StaleCheckpointError(HarnessError):
    """Checkpoint was already consumed, superseded, or refused by the backend."""


class ExternalCallError(HarnessError):
    """A strategy, router or backend call reverted or failed. Never retried."""

    def __init__(self, target: str, message: str):
        super().__init__(f"{target}: {message}")
        self.target = target


class ProvisioningError(HarnessError):
    """Shared suite setup failed; no scenario can run."""
