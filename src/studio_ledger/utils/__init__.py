"""Shared utilities."""

from studio_ledger.utils.async_utils import run_async

__all__ = ["run_async"]
