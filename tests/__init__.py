"""
dynamo-em test suite.

This package contains:
- unit/: Unit tests (in-memory store, mocked DynamoDB client)
- integration/: Full track/flush cycles against the in-memory store
"""
