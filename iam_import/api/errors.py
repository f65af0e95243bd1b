"""JSON error responses for the admin API."""
from flask import jsonify
from werkzeug.exceptions import BadRequest, Forbidden, HTTPException

# status -> (error title, message used when abort() gave no description of its own)
_ERRORS = {
    400: ("Bad Request", "Malformed request"),
    401: ("Unauthorized", "Authentication required"),
    403: ("Forbidden", "Insufficient permissions"),
    404: ("Not Found", "Resource not found"),
    405: ("Method Not Allowed", "Method not allowed for this resource"),
}

# Descriptions that carry no information for API clients
_GENERIC_DESCRIPTIONS = {BadRequest.description, Forbidden.description}


def _error_response(error: HTTPException):
    title, fallback = _ERRORS[error.code]
    description = error.description
    if error.code in (400, 403) and description and description not in _GENERIC_DESCRIPTIONS:
        message = description
    else:
        message = fallback
    return jsonify({"error": title, "message": message}), error.code


def register_error_handlers(app):
    """Register JSON error handlers with the Flask app."""
    for status in _ERRORS:
        app.register_error_handler(status, _error_response)

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Anything unexpected becomes a logged 500."""
        if isinstance(error, HTTPException):
            return error

        app.logger.error(f"Unhandled exception: {error}", exc_info=True)
        return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500
