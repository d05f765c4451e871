"""Retrieval-augmented generation of SVO protocol verification proofs."""
