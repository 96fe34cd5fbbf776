import json

from wgi import CanonicalResponse


def handler(request):
    """
    Example handler; runs unchanged in cgi and lambda mode.

    - request: CanonicalRequest with method, path, headers (case-insensitive),
      query_params (get(key, default) falls back when absent) and body
    - return a CanonicalResponse, or a dict/str that wgi converts into one
    """
    message = request.query_params.get("message", "Unset")
    if request.method == "GET":
        body = {"message": message, "userAgent": request.headers.get("user-agent")}
        return CanonicalResponse(200, {"Content-Type": "application/json"}, json.dumps(body))
    return CanonicalResponse(200, {"Content-Type": "text/plain"}, f"Handled {request.method} with body {request.body!r}")
