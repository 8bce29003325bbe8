"""
PawSitters core: entity validation and persistence for a pet-sitting marketplace.
"""
__version__ = "1.0.0"
