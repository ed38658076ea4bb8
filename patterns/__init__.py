"""Reusable patterns the rental service is built from.

Each module is a self-contained pattern: rules engine, workflow state
machine, repository layer, and domain configuration.
"""
