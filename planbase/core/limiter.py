"""
Rate limiter shared by the application and the routes that opt into limits.
"""
from slowapi import Limiter

from planbase.features.users.dependencies import get_authorization_header


limiter = Limiter(key_func=get_authorization_header)
