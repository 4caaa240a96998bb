"""API Routers package."""
from . import planner, shifts, reports, events

__all__ = ['planner', 'shifts', 'reports', 'events']
