"""
Unit and end-to-end tests for the harness.
"""
