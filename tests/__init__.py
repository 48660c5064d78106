"""
Tests Package

Test structure:
- tests/unit/ - Fast, isolated unit tests (remote API mocked with httpx.MockTransport)
- tests/conftest.py - Shared fixtures
"""
