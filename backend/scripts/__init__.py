"""
Backend Scripts Module

Available scripts:
    - validate_templates.py: Validates built-in or JSON-defined approval templates

Usage:
    python -m scripts.validate_templates
"""
