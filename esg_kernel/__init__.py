"""
ESG Kernel - shared infrastructure for the metric ingestion system.

Provides:
- Declarative ORM base with UUID primary keys and audit columns
- Engine/session management with transactional scopes
- Structured JSON logging with request-scoped context
- Injectable clocks
- Typed exception hierarchy with machine-readable codes
"""

__version__ = "0.1.0"
