"""Test suite for celltype-refmatch.

Test organization:
- fixtures/: Synthetic data generators and AnnData wrappers
- unit/: Unit tests for individual modules

Run tests with:
    pytest tests/
    pytest tests/unit/
    pytest tests/ -v --tb=short
"""
