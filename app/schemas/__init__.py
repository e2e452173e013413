"""
EduPortal Billing - Pydantic Schemas Package
"""
