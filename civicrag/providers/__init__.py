"""Clients for the external services: tokenizer, embeddings, cross-encoder, LLM."""
