"""
TeachDash Services
==================

Business logic services for the TeachDash application.

Services:
- ai_client: Gemini / Anthropic providers with rate-limit retry
- json_repair: Recovering JSON from model output
- lesson_plan_generator: Brainstorm chat, parsing, activity regeneration
- lesson_plan_importer: .docx lesson plan import
- bellringer_generator: Journal prompts and ACT questions
- material_generator: Worksheets, rubrics and other class materials
- standards_tagger: Standards tagging, coverage and gap suggestions
- subdash_generator: Substitute plan snapshots
- email_service: Publish notifications via Resend
- export_service: HTML and .docx exports
- school_calendar: School-week date helpers
- class_matcher: Mapping free-text class names to classes
"""

# Services are imported directly when needed to avoid circular imports
# Example: from teachdash.services.standards_tagger import tag_and_save

__all__ = [
    'ai_client',
    'json_repair',
    'lesson_plan_generator',
    'lesson_plan_importer',
    'bellringer_generator',
    'material_generator',
    'standards_tagger',
    'subdash_generator',
    'email_service',
    'export_service',
    'school_calendar',
    'class_matcher',
]
