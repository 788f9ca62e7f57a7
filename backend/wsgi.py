# backend/wsgi.py
from tailorshop import create_app

app = create_app()
