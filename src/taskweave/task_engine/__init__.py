"""Dependency-graph engine for hierarchical task documents.

This package provides the node identifier, the in-memory task store, the
dependency graph with cycle detection, the validator, the repair passes, and
the next-work selector.  :class:`TaskEngine` wraps them behind an API that
returns structured results instead of raising.
"""
