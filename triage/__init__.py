"""
Guided medical-triage conversation engine.
"""
