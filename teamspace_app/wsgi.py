from __future__ import annotations

# gunicorn entry point: `gunicorn teamspace_app.wsgi:app`
from teamspace_app.app import create_app


app = create_app()
