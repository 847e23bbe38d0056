"""
Integration Tests Package for the Campus Parking booking core

Integration tests run the application services against real storage
backends and check that components work together:
1. SQLAlchemy repositories on an in-memory SQLite database
2. Full booking lifecycle through ServiceFactory
3. Concurrent hold creation on one spot
"""
