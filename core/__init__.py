"""
Core bot functionality - settings store, settings cache and the moderation pipeline
"""
