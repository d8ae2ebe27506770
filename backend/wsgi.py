# backend/wsgi.py
from shopcord import create_app

app = create_app()
