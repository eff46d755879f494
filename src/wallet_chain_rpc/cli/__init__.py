"""Command-line interface for wallet-chain-rpc."""
