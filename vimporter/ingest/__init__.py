"""Reconciliation core: fingerprints, asset cache, matching, operations and sweep."""
