"""
Services Package

Query-level market data service, the provider fallback orchestrator and the
synthetic placeholders used when every provider fails.
"""
