"""
Configuration for the neuro-genetic search: pydantic schema plus YAML defaults.
"""

from .settings_schema import (
    GeneticSettings,
    NetworkSettings,
    Settings,
    load_validated_settings,
)

__all__ = [
    'GeneticSettings',
    'NetworkSettings',
    'Settings',
    'load_validated_settings',
]
