# File: src/parkwise/domain/__init__.py
"""Domain layer: models, assignment strategies, billing and overstay rules"""
