"""
FaceGuard - Face Verification Core

A modular Python library for face-based employee authentication.
Localizes and quality-gates faces, encodes them as versioned templates,
compares templates 1:1 and 1:N, and records every authentication attempt.
"""

__version__ = "1.0.0"
__author__ = "FaceGuard Team"
