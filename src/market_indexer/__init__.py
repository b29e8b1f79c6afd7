"""Chain event indexer for a token contract and its market contract."""
