from __future__ import annotations

from flask import jsonify

from ..commands import CommandResult
from ..errors import AUTHORIZATION, NOT_FOUND, STATE_CONFLICT, TRANSIENT, VALIDATION
from ..forms import ApiForm

STATUS_BY_CATEGORY = {
    VALIDATION: 400,
    AUTHORIZATION: 403,
    STATE_CONFLICT: 409,
    NOT_FOUND: 404,
    TRANSIENT: 503,
}


def respond(result: CommandResult, status: int = 200):
    if not result.success:
        status = STATUS_BY_CATEGORY.get(result.category, 503)
    return jsonify(result.to_dict()), status


def form_error(form: ApiForm):
    return jsonify(success=False, error=form.first_error(), error_code="ValidationFailed"), 400
