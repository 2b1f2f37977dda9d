# backend/wsgi.py
from unitledger import create_app

app = create_app()
