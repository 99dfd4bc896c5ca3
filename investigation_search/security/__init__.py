"""
Security Module

Validation of investigator input before it reaches the search pipeline
"""

from investigation_search.security.input_sanitizer import InputSanitizer

__all__ = [
    'InputSanitizer'
]
