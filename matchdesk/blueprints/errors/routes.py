import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException
from flask_wtf.csrf import CSRFError
from ...errors import AssignmentError
from ...extensions import db
from . import errors_bp

log = logging.getLogger(__name__)


def _error(kind, message, code):
    return jsonify({"error": {"kind": kind, "message": message}}), code


# Domain errors: 400/401/403/404/409/410
@errors_bp.app_errorhandler(AssignmentError)
def err_domain(e: AssignmentError):
    db.session.rollback()
    return jsonify({"error": e.to_dict()}), e.status_code

# CSRF – treated as 400 Bad Request
@errors_bp.app_errorhandler(CSRFError)
def err_csrf(e):
    return _error("CSRF_ERROR", e.description, 400)

# Fallback for HTTPException (404 routes, 405, 413 ...)
@errors_bp.app_errorhandler(HTTPException)
def err_http(e: HTTPException):
    kind = (e.name or "error").upper().replace(" ", "_")
    return _error(kind, e.description, e.code)

# Last-resort: any other Exception
@errors_bp.app_errorhandler(Exception)
def err_unexpected(e):
    # if a DB action caused this, rollback so app isn't stuck in bad transaction
    try:
        db.session.rollback()
    except Exception:
        log.exception("rollback after unhandled error failed")
    log.exception("unhandled error: %s", e)
    # Don't leak internals
    return _error("INTERNAL_ERROR", "Something went wrong.", 500)
