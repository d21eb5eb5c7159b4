"""License approval workflow engine"""
