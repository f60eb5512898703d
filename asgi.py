"""
asgi.py -- Application assembly for the MediLog API.

api/main.py only defines create_app(); nothing is built at import time. This
module is the single place that builds the process-wide app from the
environment (get_settings()), so importing api.main in tests never needs a
SECRET_KEY.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app

app = create_app()
