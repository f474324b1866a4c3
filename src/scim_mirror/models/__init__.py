"""Typed records exchanged between the directory reader, the mirror store and the sync engine."""
