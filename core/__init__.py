"""
Core Package

Contains the exchange-independent plumbing of the client:
- config: Pydantic Settings (endpoints, sandbox switch, credentials)
- logging: "cbpro" logger namespace and helpers
- exceptions: Error taxonomy surfaced to callers
- schemas: Pydantic models for credentials, request descriptors, responses
  and feed subscription messages
"""
