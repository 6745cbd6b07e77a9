"""Feature modules (models, repositories, services and routers per domain)."""
