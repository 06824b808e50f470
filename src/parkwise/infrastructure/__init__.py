# File: src/parkwise/infrastructure/__init__.py
"""Infrastructure layer: persistence, messaging, configuration and wiring"""
