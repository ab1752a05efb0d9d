from flask import Blueprint

# Public, cross-origin API called by the embedded widget; CSRF exempt in create_app()
bp = Blueprint("widget", __name__)

from . import routes  # noqa: E402,F401 (import after bp to avoid circulars)
