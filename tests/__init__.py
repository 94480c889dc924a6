"""
linkguard Tests Package
=======================
Test suite for the link validator.

Run all tests: python3 -m pytest tests/ -v
Run specific: python3 -m pytest tests/test_filesystem.py -v
"""
