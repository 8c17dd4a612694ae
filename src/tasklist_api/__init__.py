"""
FastAPI task list backend package.

The application object lives in `tasklist_api.main` (`app`, or `create_app()`
for a configured instance).
"""
