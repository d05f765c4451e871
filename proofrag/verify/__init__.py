"""Proof generation: prompt assembly, model calls and output validation."""
