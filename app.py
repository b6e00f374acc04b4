#!/usr/bin/env python3
import json
import logging
import os

from dotenv import load_dotenv
from flask import Flask, abort, jsonify, redirect, render_template_string, request, url_for
from flask_limiter import Limiter

from attempts import FailedAttemptTracker
from security import ValidationError, validate_many, validate_url

# Load .env values
load_dotenv()

app = Flask(__name__)

# Basic config
_env = os.getenv("FLASK_ENV")
_is_dev = _env == "development"


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


app.config.update(
    TRUST_PROXY=_env_flag("TRUST_PROXY"),
    MAX_FAILED_ATTEMPTS=int(os.getenv("MAX_FAILED_ATTEMPTS", "10")),
    FAILED_ATTEMPTS_WINDOW=int(os.getenv("FAILED_ATTEMPTS_WINDOW", "900")),
    BATCH_MAX_URLS=int(os.getenv("BATCH_MAX_URLS", "100")),
    BATCH_WORKERS=int(os.getenv("BATCH_WORKERS", "1")),
    SECURITY_STATS_ENABLED=_env_flag("SECURITY_STATS_ENABLED"),
    VALIDATION_RATE_LIMIT=os.getenv("VALIDATION_RATE_LIMIT", "30 per minute"),
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "DEBUG" if _is_dev else "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

failed_attempts = FailedAttemptTracker(
    max_failures=app.config["MAX_FAILED_ATTEMPTS"],
    window_seconds=app.config["FAILED_ATTEMPTS_WINDOW"],
)

BLOCKED_MESSAGE = "Too many invalid URL submissions. Please try again later."
RATE_LIMITED_MESSAGE = "Too many URL validation requests. Please slow down."


@app.after_request
def add_security_headers(response):
    # Pages here only ever frame validated http(s) targets.
    csp = (
        "default-src 'none'; "
        "style-src 'self' 'unsafe-inline'; "
        "frame-src http: https:; "
        "form-action 'self'; "
        "frame-ancestors 'self'; "
        "base-uri 'none'"
    )
    response.headers.setdefault("Content-Security-Policy", csp)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    return response


def client_address() -> str:
    if app.config["TRUST_PROXY"]:
        forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
        if forwarded:
            return forwarded
    return request.remote_addr or "unknown"


limiter = Limiter(
    client_address,
    app=app,
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
    headers_enabled=True,
)

# One budget per client across every route that validates URLs
validation_limit = limiter.shared_limit(
    lambda: app.config["VALIDATION_RATE_LIMIT"], scope="url-validation"
)


def _preview(raw) -> str:
    # Log only the head of submitted input
    text = raw if isinstance(raw, str) else repr(raw)
    return text[:100]


def log_security_event(event_type: str, **details):
    entry = {
        "event": event_type,
        "client": client_address(),
        "user_agent": request.headers.get("User-Agent", "unknown"),
        "method": request.method,
        "path": request.path,
        **details,
    }
    logger.warning("[SECURITY] %s: %s", event_type, json.dumps(entry, default=str))
    return entry


def client_blocked() -> bool:
    client = client_address()
    if not failed_attempts.is_blocked(client):
        return False
    log_security_event(
        "BLOCKED_EXCESSIVE_FAILURES", failed_attempts=failed_attempts.failure_count(client)
    )
    return True


def check_url(raw):
    """validate_url, counting a rejection against the calling client."""
    try:
        return validate_url(raw)
    except ValidationError as e:
        failed_attempts.record_failure(client_address(), e.code.value)
        log_security_event(
            "URL_VALIDATION_FAILED", url=_preview(raw), validation_error=e.code.value
        )
        raise


def _input_error(message: str):
    return jsonify(error={"code": "INVALID_INPUT", "message": message}), 400


@app.errorhandler(429)
def rate_limited(e):
    log_security_event(
        "RATE_LIMIT_EXCEEDED", url=_preview(request.values.get("url")), limit=str(e.description)
    )
    if request.path.startswith("/api/"):
        return jsonify(error={"code": "RATE_LIMITED", "message": RATE_LIMITED_MESSAGE}), 429
    return render_template_string(
        REJECTED_HTML, code="RATE_LIMITED", message=RATE_LIMITED_MESSAGE, submitted=None
    ), 429


# ---------- Templates ----------
FORM_HTML = """
<!doctype html>
<title>navguard</title>
<h1>Open a page</h1>
<form action="{{ url_for('navigate') }}" method="get">
  <input type="text" name="url" placeholder="Enter URL"
         value="{{ submitted or '' }}"
         style="width: min(600px, 90%)"
         required autocorrect="off" autocapitalize="none" spellcheck="false">
  <input type="submit" value="Go">
</form>
"""

FRAME_HTML = """
<!doctype html>
<title>{{ target }}</title>
<form action="{{ url_for('navigate') }}" method="get">
  <input type="text" name="url" value="{{ target }}"
         style="width: min(600px, 90%)"
         required autocorrect="off" autocapitalize="none" spellcheck="false">
  <input type="submit" value="Go">
</form>
<iframe src="{{ target }}" title="Page preview"
        sandbox="allow-scripts allow-forms allow-popups"
        referrerpolicy="no-referrer"
        style="width: 100%; height: 85vh; border: 1px solid #ddd;"></iframe>
"""

REJECTED_HTML = """
<!doctype html>
<title>Navigation blocked</title>
<h1>Navigation blocked</h1>
<p><strong>{{ code }}</strong>: {{ message }}</p>
{% if submitted %}<p>Submitted: <code>{{ submitted }}</code></p>{% endif %}
<p><a href="{{ url_for('index') }}">Back</a></p>
"""


# ---------- Routes ----------
@app.route("/", methods=["GET"])
def index():
    return render_template_string(FORM_HTML, submitted=request.args.get("url", ""))


@app.route("/navigate", methods=["GET"])
@validation_limit
def navigate():
    if "url" not in request.args:
        return redirect(url_for("index"))
    submitted = request.args["url"]

    if client_blocked():
        return render_template_string(
            REJECTED_HTML, code="BLOCKED", message=BLOCKED_MESSAGE, submitted=None
        ), 403

    try:
        result = check_url(submitted)
    except ValidationError as e:
        return render_template_string(
            REJECTED_HTML, code=e.code.value, message=e.message, submitted=submitted
        ), 400

    return render_template_string(FRAME_HTML, target=result.sanitized)


@app.route("/api/validate", methods=["GET", "POST"])
@validation_limit
def api_validate():
    if client_blocked():
        return jsonify(error={"code": "BLOCKED", "message": BLOCKED_MESSAGE}), 403

    if request.method == "POST":
        payload = request.get_json(silent=True)
        raw = payload.get("url") if isinstance(payload, dict) else None
    else:
        raw = request.args.get("url")

    try:
        result = check_url(raw)
    except ValidationError as e:
        return jsonify(error=e.to_dict()), 400
    return jsonify(result.to_dict())


@app.route("/api/validate/batch", methods=["POST"])
@validation_limit
def api_validate_batch():
    if client_blocked():
        return jsonify(error={"code": "BLOCKED", "message": BLOCKED_MESSAGE}), 403

    payload = request.get_json(silent=True)
    urls = payload.get("urls") if isinstance(payload, dict) else None

    max_urls = app.config["BATCH_MAX_URLS"]
    if isinstance(urls, list) and len(urls) > max_urls:
        return _input_error(f"At most {max_urls} URLs may be validated per request")

    try:
        items = validate_many(urls, max_workers=app.config["BATCH_WORKERS"])
    except TypeError as e:
        return _input_error(str(e))

    rejected = [item.error.code.value for item in items if item.error is not None]
    if rejected:
        log_security_event(
            "URL_BATCH_VALIDATION_FAILED", rejected=len(rejected), codes=sorted(set(rejected))
        )
    return jsonify(results=[item.to_dict() for item in items])


@app.route("/api/security/failed-attempts", methods=["GET"])
def failed_attempts_stats():
    if not app.config["SECURITY_STATS_ENABLED"]:
        abort(404)
    return jsonify(failed_attempts.stats())


if __name__ == "__main__":
    # Only enable Flask debug when FLASK_ENV=development
    app.run(
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "5000")),
        debug=_is_dev,
    )
