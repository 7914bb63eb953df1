"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Text extraction from uploaded files
- Document chunking with overlap
- Embedding generation
- Document storage (FAISS or in-memory) and similarity search
- Retrieval with graceful degradation
- Prompt assembly and streamed responses
"""
