"""
tka_invoice/extensions.py

Flask extensions, created unbound and initialised in create_app().

Services and models import db from here, never from the app package, so
they can be imported without building an application.
"""

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
