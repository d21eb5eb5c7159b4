"""
Templates Package

Built-in approval chains registered at startup.
"""
from .default_templates import default_templates

__all__ = ["default_templates"]
