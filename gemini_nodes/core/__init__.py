"""Shared building blocks: errors, results, host contract, resolution and storage."""
