"""
Core utilities package.

This package MUST NOT:
- import estimator code
- import gate code
- hold model state

It is safe for:
- logging
- config
- exceptions
"""
