"""
Services Package

Local caching, category catalog and document store access.
"""
