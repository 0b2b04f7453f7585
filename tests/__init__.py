"""
Tests package - Test suite for the pod affinity webhook.

Contains:
- unit/: Unit tests for individual components
- conftest.py: Sample cluster objects and an in-memory registration store
"""
