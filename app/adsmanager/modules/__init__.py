"""
Feature modules live under this package.

Each module owns its models, service layer and routes, and reuses the platform
primitives (auth, RBAC, audit, storage, DB session) from app.adsmanager.
"""
