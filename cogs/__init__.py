"""
Discord cogs
"""
