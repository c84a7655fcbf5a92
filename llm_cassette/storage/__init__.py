"""
Storage layer for LLM Cassette.

Record models and the filesystem content store.
"""
