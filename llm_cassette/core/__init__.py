"""
Core modules for LLM Cassette.

This package contains canonicalization, key derivation, the dispatch
engine, the tool cache, response normalization and the usage ledger.
"""
