# backend/wsgi.py
from shopbooks import create_app

app = create_app()
