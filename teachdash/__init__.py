"""
TeachDash Backend Package
=========================

Flask-based backend for the TeachDash teacher planning dashboard.

Structure:
- routes/: API route blueprints
- services/: AI generation, document import and helper services
- data/: Static data files (standards seed, class matching rules, school calendar)
- config.py: Configuration management
- db.py: Supabase client and shared query helpers
"""

__version__ = "1.0.0"
