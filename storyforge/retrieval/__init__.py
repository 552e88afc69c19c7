"""Evidence chunking, embedding, storage and multi-category retrieval."""
