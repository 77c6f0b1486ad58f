"""
Arena API - tournament entry and wallet ledger for mobile esports

Responsibilities:
- Game and tournament catalog
- Tournament registration with entry fees
- Wallet ledger (deposits, withdrawals, entry fees, prizes)
- Registration and tournament lifecycle events
"""
