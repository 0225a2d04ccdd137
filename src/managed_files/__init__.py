"""Multi-tenant file attachment service."""
