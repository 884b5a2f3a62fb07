"""
Users, profiles, sessions and verification tokens.
"""
