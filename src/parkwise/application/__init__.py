# File: src/parkwise/application/__init__.py
"""Application layer: DTOs, use-case services and the command boundary"""
