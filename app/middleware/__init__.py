"""
Middleware package
"""
from .auth import register_auth_middleware, role_required

__all__ = ['register_auth_middleware', 'role_required']
