"""Security for BookOps: API keys and region-scoped RBAC."""
