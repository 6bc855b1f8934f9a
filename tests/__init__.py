"""
Test suite for schemashift.

Unit tests run against store and driver doubles; no server is needed.
"""
