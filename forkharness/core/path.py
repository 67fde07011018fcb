# /forkharness/core/path.py
# Packed multi-hop route encoding consumed by Uniswap V3 style routers:
#   token0 (20 bytes) | fee0 (3 bytes, big-endian) | token1 | fee1 | ... | tokenN
from typing import List, Sequence, Tuple, Union

from web3 import Web3

from forkharness.core.errors import InvalidRouteError, MalformedPathError

ADDR_SIZE = 20
FEE_SIZE = 3
NEXT_OFFSET = ADDR_SIZE + FEE_SIZE
MAX_FEE = 2 ** (8 * FEE_SIZE)


def _address_bytes(token) -> bytes:
    if not Web3.is_address(token):
        raise InvalidRouteError(f"Not a 20-byte address: {token!r}")
    if isinstance(token, (bytes, bytearray)):
        return bytes(token)
    return Web3.to_bytes(hexstr=token)


def encode_path(route: Sequence[str], fees: Sequence[int]) -> bytes:
    """
    Packs a token route and one fee tier per hop into router path bytes.

    Args:
        route: Token addresses in swap order, at least two.
        fees: Fee tier for each hop, so exactly ``len(route) - 1`` of them.

    Returns:
        ``20 * len(route) + 3 * len(fees)`` bytes, no separators.
    """
    if len(route) != len(fees) + 1:
        raise InvalidRouteError(
            f"path/fee lengths do not match: {len(route)} tokens, {len(fees)} fees"
        )
    if len(route) < 2:
        raise InvalidRouteError("A route needs at least two tokens")

    encoded = bytearray()
    for token, fee in zip(route, fees):
        if isinstance(fee, bool) or not isinstance(fee, int) or not 0 <= fee < MAX_FEE:
            raise InvalidRouteError(f"Fee tier does not fit in {FEE_SIZE} bytes: {fee!r}")
        encoded += _address_bytes(token)
        encoded += fee.to_bytes(FEE_SIZE, "big")
    encoded += _address_bytes(route[-1])
    return bytes(encoded)


def encode_path_hex(route: Sequence[str], fees: Sequence[int]) -> str:
    """Same bytes as :func:`encode_path`, as a lower-case ``0x`` hex string."""
    return "0x" + encode_path(route, fees).hex()


def decode_path(data: Union[bytes, str]) -> Tuple[List[str], List[int]]:
    if isinstance(data, str):
        try:
            data = Web3.to_bytes(hexstr=data)
        except ValueError as e:
            raise MalformedPathError(f"Path is not valid hex: {e}") from e

    # len == 20n + 3(n - 1)  <=>  len + 3 == 23n
    hops, remainder = divmod(len(data) + FEE_SIZE, NEXT_OFFSET)
    if remainder or hops < 2:
        raise MalformedPathError(f"Invalid packed path length: {len(data)} bytes")

    route: List[str] = []
    fees: List[int] = []
    for offset in range(0, len(data) - ADDR_SIZE, NEXT_OFFSET):
        route.append(Web3.to_checksum_address(data[offset:offset + ADDR_SIZE]))
        fees.append(int.from_bytes(data[offset + ADDR_SIZE:offset + NEXT_OFFSET], "big"))
    route.append(Web3.to_checksum_address(data[-ADDR_SIZE:]))
    return route, fees
