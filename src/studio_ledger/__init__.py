"""Studio Ledger - coin ledger and metered generation jobs for an AI drama studio."""

__version__ = "0.1.0"
