"""Declarative manga extraction: spider configs, extraction engine, resolvers."""
