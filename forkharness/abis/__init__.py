"""ABI fragments for the external contracts the harness calls into.

Strategy and proxy ABIs are not listed here: they come from the compiled
artifacts of the contracts under test (see ``forkharness.adapters.artifacts``).
"""

from forkharness.abis.erc20 import ERC20_ABI
from forkharness.abis.liquity import TROVE_MANAGER_ABI
from forkharness.abis.uniswap_v3 import SWAPPER_ABI, UNISWAP_V3_FACTORY_ABI

__all__ = ["ERC20_ABI", "SWAPPER_ABI", "TROVE_MANAGER_ABI", "UNISWAP_V3_FACTORY_ABI"]
