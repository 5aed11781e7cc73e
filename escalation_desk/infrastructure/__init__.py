"""
Infrastructure Layer
=====================

Database connection management shared by all bounded contexts.
"""
