"""
Tests Package - Unit and Integration Tests

Test structure:
- tests/conftest.py - shared fixtures (settings, in-memory SQLite, fake StrafesNET API)
- tests/test_*.py - one module per component

HTTP is served by httpx.MockTransport and storage by in-memory SQLite with
foreign keys enforced.
"""
