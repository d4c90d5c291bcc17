from __future__ import annotations

from flask_login import UserMixin

from .extensions import login_manager

CREDENTIAL_HEADER = "X-Member-Code"
# EventSource cannot set headers, so the event stream also accepts it as a query arg
CREDENTIAL_QUERY_ARG = "member_code"


class Credential(UserMixin):
    """The opaque per-browser member code a request was made with."""

    def __init__(self, code: str):
        self.code = code

    def get_id(self) -> str:
        return self.code


@login_manager.request_loader
def load_credential(request):
    code = (request.headers.get(CREDENTIAL_HEADER) or "").strip()
    if not code and request.endpoint == "events.stream":
        code = (request.args.get(CREDENTIAL_QUERY_ARG) or "").strip()
    return Credential(code) if code else None
