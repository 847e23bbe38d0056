# File: src/campus_parking/__init__.py
"""
Campus Parking - booking, availability, pricing and reporting core
for the campus parking reservation system.
"""

__version__ = "1.0.0"
