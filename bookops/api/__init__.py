"""BookOps REST API package.

Mount point: /api/v1/
Auth:        Authorization: Bearer <jwt|bk_key>, or X-API-Key header
"""
