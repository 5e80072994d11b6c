"""
Configuration management for vm_scaling.

Contains the Pydantic runtime settings and the JSON lab configuration models.
"""
