"""
Test suite for todo-sync.

This package contains:
- Unit tests for parsing, identity, caching and the gateway layer
- Reconciler tests against an in-memory host and fake gateway
- End-to-end tests over a folder vault
"""
