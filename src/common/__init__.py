"""
Common building blocks shared by the cache, the poller and the orchestrator.

This package contains reusable, domain-agnostic code:

- configuration loading (environment variables)
- RAG backend API client
- the error taxonomy
- cache owner identity resolution from the bearer credential
- logging configuration
"""
