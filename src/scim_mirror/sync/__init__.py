"""Reconciliation engine: snapshot, diff, apply, notify, orchestrate."""
