# /forkharness/abis/liquity.py
TROVE_MANAGER_ABI = [
    {"inputs": [{"internalType": "uint256", "name": "_n", "type": "uint256"}], "name": "liquidateTroves", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [], "name": "getTroveOwnersCount", "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"}
]
