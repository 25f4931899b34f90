"""
Users and the identity-provider adapter.
"""
