"""Service modules - Directory, event delivery and workflow orchestration"""
