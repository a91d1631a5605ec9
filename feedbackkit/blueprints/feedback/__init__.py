from flask import Blueprint

bp = Blueprint("feedback", __name__)

# Import submodules so their routes register on the same bp
from . import routes  # noqa: E402,F401
from . import votes  # noqa: E402,F401
from . import comments  # noqa: E402,F401
