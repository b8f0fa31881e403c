# Package
from flask import Blueprint

api_bp = Blueprint("api", __name__)

from attendance_sync.api import routes  # noqa: E402,F401
