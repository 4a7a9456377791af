"""
Fact Provider

Current-information digests from the Perplexity retrieval API.
"""
from facts.client import DigestSource, FactProviderClient

__all__ = [
    "DigestSource",
    "FactProviderClient",
]
