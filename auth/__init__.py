"""
auth — User authentication module.

Provides:
  • bcrypt password hashing
  • JWT issuance & verification (PyJWT)
  • Credential store (users + opaque session tokens)
  • Pluggable strategies (bearer JWT, API key, session token) and the
    dispatcher that runs them
  • Register / Login API routes
  • ``get_current_principal`` FastAPI dependency
"""
