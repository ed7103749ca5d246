"""
Lifestyle Planner API - FastAPI backend for AI-assisted personal lifestyle plans.
"""
