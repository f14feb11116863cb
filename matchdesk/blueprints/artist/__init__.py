from flask import Blueprint

artist_bp = Blueprint("artist", __name__)

# Import route modules to register their endpoints
from . import routes  # noqa: E402,F401
