# File: src/campus_parking/infrastructure/__init__.py
"""Infrastructure layer: storage backends, locking, messaging and wiring."""
