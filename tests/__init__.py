"""
Test Suite

Structure:
- tests/unit/: Tests for individual components (config, parsing, tracker,
  registry, transformers, orchestrator, cache, service, REST routes)

Only test_http_transport.py talks HTTP, to a local aiohttp server; elsewhere
the orchestrator's transport is replaced by scripted responses. Uses pytest
with pytest-asyncio for async tests.
"""
