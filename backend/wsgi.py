# backend/wsgi.py
from hirepay import create_app

app = create_app()
