"""
WSGI entry point for Mailchecker.

WSGI hosts import this module and look for the ``app`` variable.  The
development server can also be started by running this file directly.

LOCAL DEVELOPMENT
=================

  export SECRET_KEY=dev-only-not-for-production
  export DNS_SERVERS=9.9.9.9        # optional, public fallbacks always apply
  python wsgi.py

The API is then available at http://127.0.0.1:5000/api/v1/

  curl http://127.0.0.1:5000/api/v1/check/example.com
  curl http://127.0.0.1:5000/api/v1/check/example.com?selectors=s1,s2

For testing:

  pip install -e ".[test]"
  pytest tests/ -v
  pytest tests/ --cov=mailchecker --cov-report=term-missing
"""

from __future__ import annotations

from mailchecker import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True)
