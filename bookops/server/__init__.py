"""BookOps HTTP server package.

Entry point:
    uvicorn bookops.server.main:app --host 0.0.0.0 --port 8000
"""
