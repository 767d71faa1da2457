"""
auth — boundary to the external session system.

Provides:
  • Session token creation & verification
  • ``get_current_user_id`` FastAPI dependency
"""
