"""Title Escrow Ledger: conditional multi-party escrow for unique assets."""

__version__ = "0.1.0"
