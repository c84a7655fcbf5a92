"""
Configuration for LLM Cassette.
"""
