"""
OAuth2 authorization server with email-based multi-factor authentication.
"""
