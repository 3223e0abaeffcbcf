"""WSGI entry point: ``gunicorn wsgi:app`` or ``flask --app wsgi run``."""
import os

from app import create_app

app = create_app()


if __name__ == "__main__":
    app.run(debug=app.config.get("DEBUG", False), port=int(os.getenv("PORT", 5000)))
