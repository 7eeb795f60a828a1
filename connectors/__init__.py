"""
connectors — OAuth integration module for external services.

Provides:
  • Signed, time-boxed OAuth state tokens (CSRF protection)
  • One adapter per provider for the code → token exchange
  • Fernet-encrypted, write-only credential vault
  • Hash-chained audit log of rejected callbacks
  • The callback orchestrator and its HTTP routes

Each provider (Google Drive, Shopify, Notion, …) is a subclass of BaseConnector.
"""
