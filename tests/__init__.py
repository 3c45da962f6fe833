"""
Test Suite

Contains unit tests for the Coinbase Pro client.

Structure:
- tests/unit/: Tests for individual components (signer, schemas, REST
  clients, paginator, WebSocket feed, configuration)

All network I/O is mocked; no test talks to the exchange.

Uses pytest with pytest-asyncio for testing async functionality.
"""
