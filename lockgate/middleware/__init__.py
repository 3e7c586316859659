"""
Request authentication
"""
