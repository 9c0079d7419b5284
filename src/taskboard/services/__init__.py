"""Service helpers that sit beside the task domain."""
