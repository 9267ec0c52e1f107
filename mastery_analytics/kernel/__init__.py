"""
Kernel layer: persistence models and the audit/event infrastructure.
"""
