from flask import Blueprint
from flask_login import current_user

from feedbackloop.services.policy import deny_json

bp = Blueprint("admin", __name__)


@bp.before_request
def _require_login_admin():
    # Per-route permission_required() still decides 403 vs pass
    if current_user.is_authenticated:
        return None
    return deny_json(401)


# Import submodules so their routes register on the same bp
from . import users  # noqa: E402,F401
from . import roles  # noqa: E402,F401
from . import permissions  # noqa: E402,F401
from . import resources  # noqa: E402,F401
