"""
Configuration and validation package.

This package contains modules for validating deployment plans and
reading run options from deployment-config.yaml.
"""

__all__ = ['validation', 'options']
