"""
Verification services
"""
