from flask import Blueprint

bp = Blueprint("projects", __name__)

from . import routes  # noqa: E402,F401
from . import members  # noqa: E402,F401
