import os

import config
from app import app, init_db


# Ensure runtime folders and local tables exist when running via Gunicorn/Werkzeug.
os.makedirs(config.INSTANCE_DIR, exist_ok=True)
if config.BACKEND == "local":
    init_db()
