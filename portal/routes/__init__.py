"""
Routes Package
Exports all route blueprints
"""
from portal.routes.auth import auth_bp
from portal.routes.admin import admin_bp
from portal.routes.student import student_bp

__all__ = ['auth_bp', 'admin_bp', 'student_bp']
