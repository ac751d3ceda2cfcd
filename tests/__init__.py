"""
Test suite for App Import Reconciler.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_csv_duplicate_service.py -v
"""
