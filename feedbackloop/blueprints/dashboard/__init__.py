from flask import Blueprint
from flask_login import current_user

from feedbackloop.services.policy import deny_json

bp = Blueprint("dashboard", __name__)


@bp.before_request
def _require_login_dashboard():
    if current_user.is_authenticated:
        return None
    return deny_json(401)


from . import projects  # noqa: E402,F401 (import after bp to avoid circulars)
from . import feedbacks  # noqa: E402,F401
from . import webhooks  # noqa: E402,F401
