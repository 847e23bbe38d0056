# File: src/campus_parking/domain/__init__.py
"""Domain layer: entities, value objects and pure booking logic."""
