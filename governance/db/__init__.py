"""Database layer for the approval engine."""
