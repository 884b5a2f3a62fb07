"""
Email-based one-time code verification.
"""
