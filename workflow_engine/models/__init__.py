"""
Workflow Graph Engine
Shared SQLAlchemy instance.

All model modules import ``db`` from here; the app factory binds it with
``db.init_app(app)``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
