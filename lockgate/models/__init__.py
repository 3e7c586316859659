"""
Models - domain dataclasses and API (pydantic) schemas
"""
