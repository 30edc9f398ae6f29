import shlex


def getCurlCommandString(request):
    """
    Build cURL command string for a prepared request to aid with debugging.

    Args:
        request (requests.PreparedRequest): The request to build the cURL command from.
    """
    parts = ["curl", "-X", shlex.quote(request.method or "GET")]

    for header, value in (request.headers or {}).items():
        parts.extend(["-H", shlex.quote(f"{header}: {value}")])

    if request.body:
        body = request.body
        if isinstance(body, bytes):
            try:
                body = body.decode("utf-8")
            except UnicodeDecodeError:
                body = str(body)
        parts.extend(["-d", shlex.quote(body)])

    parts.append(shlex.quote(request.url))

    return " ".join(parts)
