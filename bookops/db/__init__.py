"""Database layer for BookOps: ORM models and the async session factory."""
