"""
Service layer.
"""
