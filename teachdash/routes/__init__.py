"""
TeachDash API Routes
====================

All API route blueprints for the TeachDash application.

Usage:
    from teachdash.routes import register_routes
    register_routes(app)
"""
from .lesson_plan_routes import lesson_plan_bp
from .plan_share_routes import plan_share_bp
from .activity_routes import activity_bp
from .bellringer_routes import bellringer_bp
from .standards_routes import standards_bp
from .subdash_routes import subdash_bp
from .settings_routes import settings_bp
from .calendar_routes import calendar_bp


def register_routes(app):
    """Register all route blueprints with the Flask app."""
    app.register_blueprint(lesson_plan_bp)
    app.register_blueprint(plan_share_bp)
    app.register_blueprint(activity_bp)
    app.register_blueprint(bellringer_bp)
    app.register_blueprint(standards_bp)
    app.register_blueprint(subdash_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(calendar_bp)


__all__ = [
    'register_routes',
    'lesson_plan_bp',
    'plan_share_bp',
    'activity_bp',
    'bellringer_bp',
    'standards_bp',
    'subdash_bp',
    'settings_bp',
    'calendar_bp',
]
