"""
OAuth2 authorization server: authorization codes, PKCE, token exchange,
refresh rotation, userinfo and per-client CORS.
"""
