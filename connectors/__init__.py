"""
connectors — OAuth connection and token lifecycle manager.

Provides a generic connector framework that handles:
  • OAuth2 auth-URL generation (with PKCE where the provider uses it)
  • Callback handling (single-use state → code → token exchange)
  • Per-user token storage with optimistic concurrency
  • Single-flight token refresh and re-authorization signalling
  • Fernet encryption of tokens at rest
  • Revocation / disconnect

Each provider (YouTube, LinkedIn, TikTok, X, Facebook, Instagram, Pinterest)
is a subclass of BaseConnector.
"""
