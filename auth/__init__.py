"""
auth — identity collaborator for the integration connector.

Provides:
  • Bearer token creation & verification
  • Organization membership lookup
  • ``get_current_user_id`` FastAPI dependency
"""
