"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Upload decoding and frontmatter parsing
- Document chunking with overlap
- Embedding generation
- FAISS vector storage
- Exemplar retrieval
"""
