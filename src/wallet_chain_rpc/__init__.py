"""Wallet-side decision engine for the ``wallet_addEthereumChain`` RPC method.

Validates a dapp's request to add a chain, reconciles it with what the wallet
already knows about the chain and the requesting origin, and issues the
minimal set of collaborator calls through an explicit capability set.
"""

__version__ = "0.3.0"
