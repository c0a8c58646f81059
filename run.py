"""Local development entry point for the contractor CRM API.

Usage:
    python run.py                 # http://localhost:5001
    PORT=8000 python run.py

Production runs the app factory under a WSGI server instead:
    gunicorn "contractor_crm:create_app('production')"
"""

import os

from dotenv import load_dotenv

load_dotenv()  # .env must be loaded before the config classes read os.environ

from contractor_crm import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=int(os.environ.get("PORT", 5001)))
