#!/usr/bin/env python3
"""
Flask API server for Professor Connect.

Serves the outreach wizard, Gmail connection and email history to the
browser front end.
"""

import os
import sys
import time
from datetime import datetime
from flask import Flask, jsonify, request, g, redirect
from flask_cors import CORS

# Add the project to path
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, BASE_DIR)

from professor_connect import __version__
from professor_connect.config import config, configure_logging
from professor_connect.database import init_db, get_db_session
from professor_connect.auth import (
    require_auth, create_access_token, verify_identity_token, sign_in, AuthError
)
from professor_connect.api_helpers import (
    get_credential_manager, get_record_store, get_delivery_service,
    get_matching_client, get_draft_client, get_gmail_auth_service, get_wizard,
    wizards,
)
from professor_connect.exceptions import ValidationError
from professor_connect.services import (
    BackendError, CredentialError, DeliveryFailed, GmailAuthError,
    RecordStoreError, InvalidStatusTransition,
)
from professor_connect.wizard import WizardError, ActionInProgress

# ========================================
# App Configuration
# ========================================

app = Flask(__name__)
app.config['SECRET_KEY'] = config.SECRET_KEY

# CORS Configuration
CORS(app, origins=config.ALLOWED_ORIGINS, supports_credentials=True)

# Rate limiting (simple in-memory)
rate_limit_cache = {}


# ========================================
# Utilities
# ========================================

def rate_limit():
    """Simple in-memory rate limiter."""
    client_ip = request.remote_addr
    current_time = time.time()

    if client_ip not in rate_limit_cache:
        rate_limit_cache[client_ip] = []

    # Clean old requests
    rate_limit_cache[client_ip] = [
        t for t in rate_limit_cache[client_ip]
        if current_time - t < config.RATE_LIMIT_WINDOW
    ]

    if len(rate_limit_cache[client_ip]) >= config.RATE_LIMIT_MAX_REQUESTS:
        return False

    rate_limit_cache[client_ip].append(current_time)
    return True


def parse_datetime(value) -> datetime:
    """Parse an ISO 8601 timestamp from the client. An offset is required."""
    if not value or not isinstance(value, str):
        raise ValidationError("A date and time are required")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError("Invalid date and time") from e

    if parsed.tzinfo is None:
        raise ValidationError("Include a timezone offset")
    return parsed


def get_user_record(record_id: str):
    """One of the current user's delivery records, or None."""
    return get_record_store().get(g.current_user.id, record_id)


# ========================================
# Request Hooks
# ========================================

@app.before_request
def before_request():
    """Run before each request."""
    if not rate_limit():
        return jsonify({"error": "Rate limit exceeded. Please wait."}), 429

    g.start_time = time.time()
    g.db = get_db_session()


@app.teardown_request
def teardown_request(exception=None):
    """Clean up database session."""
    db = g.pop('db', None)
    if db is not None:
        if exception:
            db.rollback()
        else:
            try:
                db.commit()
            except Exception:
                app.logger.exception("Commit failed")
                db.rollback()
        db.close()


# ========================================
# Error Handlers
# ========================================

@app.errorhandler(ValidationError)
def handle_validation_error(e):
    return jsonify({"error": str(e)}), 400


@app.errorhandler(AuthError)
def handle_auth_error(e):
    return jsonify({"error": str(e)}), 401


@app.errorhandler(CredentialError)
def handle_credential_error(e):
    return jsonify({"error": e.message, "reconnect": e.reconnect}), 401


@app.errorhandler(GmailAuthError)
def handle_gmail_auth_error(e):
    return jsonify({"error": str(e)}), 400


@app.errorhandler(ActionInProgress)
def handle_action_in_progress(e):
    return jsonify({"error": str(e)}), 409


@app.errorhandler(WizardError)
def handle_wizard_error(e):
    return jsonify({"error": str(e), "wizard": get_wizard().snapshot()}), 409


@app.errorhandler(InvalidStatusTransition)
def handle_invalid_transition(e):
    return jsonify({"error": str(e)}), 409


@app.errorhandler(DeliveryFailed)
def handle_delivery_failed(e):
    return jsonify({
        "error": e.message,
        "recordId": e.record_id,
        "message": "Email saved but sending failed. Check your profile.",
    }), 502


@app.errorhandler(BackendError)
def handle_backend_error(e):
    return jsonify({"error": e.message}), 502


@app.errorhandler(RecordStoreError)
def handle_record_store_error(e):
    return jsonify({"error": str(e)}), 500


# ========================================
# Health Check
# ========================================

@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return jsonify({
        "status": "ok",
        "timestamp": datetime.now().isoformat(),
        "version": __version__,
    })


# ========================================
# Authentication Endpoints
# ========================================

@app.route('/api/auth/google', methods=['POST'])
def google_sign_in():
    """Exchange a Google ID token for a Professor Connect session token."""
    data = request.json or {}

    claims = verify_identity_token(data.get('idToken', ''))
    user = sign_in(g.db, claims)

    return jsonify({
        "success": True,
        "token": create_access_token(user.id, user.email),
        "user": user.to_dict(),
    })


@app.route('/api/auth/me', methods=['GET'])
@require_auth
def get_current_user():
    """Get current authenticated user."""
    user = g.current_user
    return jsonify({
        **user.to_dict(),
        "gmail": get_credential_manager().status(user.id),
    })


@app.route('/api/auth/logout', methods=['POST'])
@require_auth
def logout():
    """Forget the user's in-progress wizard."""
    wizards.discard(g.current_user.id)
    return jsonify({"success": True})


# ========================================
# Gmail Connection
# ========================================

@app.route('/api/gmail/connect', methods=['GET'])
@require_auth
def gmail_connect():
    """Start the Gmail grant: returns Google's consent URL."""
    url = get_gmail_auth_service().authorization_url(g.current_user.id)
    return jsonify({"authUrl": url})


@app.route('/api/gmail/callback', methods=['GET'])
def gmail_callback():
    """Google redirects here after the user answers the consent screen."""
    if request.args.get('error'):
        app.logger.warning(f"Gmail consent declined: {request.args['error']}")
        return redirect(f"{config.FRONTEND_URL}/profile?gmail=failed")

    try:
        granted = get_gmail_auth_service().complete(
            request.args.get('code', ''), request.args.get('state', '')
        )
    except GmailAuthError as e:
        app.logger.warning(f"Gmail callback rejected: {e}")
        return redirect(f"{config.FRONTEND_URL}/profile?gmail=failed")

    get_credential_manager().store(granted.user_id, granted.access_token, granted.refresh_token)
    return redirect(f"{config.FRONTEND_URL}/profile?gmail=connected")


@app.route('/api/gmail/token', methods=['POST'])
@require_auth
def gmail_store_token():
    """Store a token the browser obtained directly from Google."""
    data = request.json or {}
    access_token = (data.get('accessToken') or '').strip()
    if not access_token:
        raise ValidationError("accessToken is required")

    manager = get_credential_manager()
    manager.store(g.current_user.id, access_token, data.get('refreshToken'))
    return jsonify({"success": True, "gmail": manager.status(g.current_user.id)})


@app.route('/api/gmail/status', methods=['GET'])
@require_auth
def gmail_status():
    return jsonify(get_credential_manager().status(g.current_user.id))


@app.route('/api/gmail', methods=['DELETE'])
@require_auth
def gmail_disconnect():
    get_credential_manager().revoke(g.current_user.id)
    return jsonify({"success": True})


# ========================================
# Outreach Wizard
# ========================================

@app.route('/api/wizard', methods=['GET'])
@require_auth
def wizard_state():
    return jsonify(get_wizard().snapshot())


@app.route('/api/wizard/search', methods=['POST'])
@require_auth
def wizard_search():
    """Find professors for a research interest."""
    data = request.json or {}
    wizard = get_wizard()
    candidates = wizard.submit_interest(data.get('researchInterest', ''), get_matching_client())

    return jsonify({
        "success": True,
        "message": f"Found {len(candidates)} matching professors",
        "wizard": wizard.snapshot(),
    })


@app.route('/api/wizard/select', methods=['POST'])
@require_auth
def wizard_select():
    """Pick a professor and draft an email to them."""
    data = request.json or {}
    professor_id = data.get('professorId')
    if not professor_id:
        raise ValidationError("professorId is required")

    wizard = get_wizard()
    wizard.select_candidate(str(professor_id), get_draft_client(), g.session.profile())
    return jsonify({"success": True, "wizard": wizard.snapshot()})


@app.route('/api/wizard/draft', methods=['PUT'])
@require_auth
def wizard_edit_draft():
    data = request.json or {}
    wizard = get_wizard()
    wizard.edit_draft(
        subject=data.get('subject'),
        body=data.get('body'),
        to=data.get('to'),
    )
    return jsonify({"success": True, "wizard": wizard.snapshot()})


@app.route('/api/wizard/back', methods=['POST'])
@require_auth
def wizard_back():
    wizard = get_wizard()
    wizard.back()
    return jsonify({"success": True, "wizard": wizard.snapshot()})


@app.route('/api/wizard/send', methods=['POST'])
@require_auth
def wizard_send():
    """Send the reviewed email now."""
    wizard = get_wizard()
    record_id = wizard.send(g.session, get_delivery_service())
    return jsonify({"success": True, "recordId": record_id, "wizard": wizard.snapshot()})


@app.route('/api/wizard/schedule', methods=['POST'])
@require_auth
def wizard_schedule():
    """Record the reviewed email as scheduled."""
    data = request.json or {}
    when = parse_datetime(data.get('scheduledAt'))

    wizard = get_wizard()
    record_id = wizard.schedule(g.session, get_delivery_service(), when)
    return jsonify({"success": True, "recordId": record_id, "wizard": wizard.snapshot()})


@app.route('/api/wizard/reset', methods=['POST'])
@require_auth
def wizard_reset():
    wizard = get_wizard()
    wizard.reset()
    return jsonify({"success": True, "wizard": wizard.snapshot()})


# ========================================
# Email History
# ========================================

@app.route('/api/emails', methods=['GET'])
@require_auth
def get_emails():
    """Email history, newest first."""
    skip = request.args.get('skip', 0, type=int)
    limit = request.args.get('limit', config.HISTORY_PAGE_SIZE, type=int)

    store = get_record_store()
    records = store.list_for_user(g.current_user.id, skip=skip, limit=limit)
    return jsonify({
        "emails": [r.to_dict() for r in records],
        "total": store.stats(g.current_user.id)["total"],
    })


@app.route('/api/emails/stats', methods=['GET'])
@require_auth
def get_email_stats():
    return jsonify(get_record_store().stats(g.current_user.id))


@app.route('/api/emails/<record_id>/resend', methods=['POST'])
@require_auth
def resend_email(record_id):
    """Send an earlier email again, unchanged."""
    record = get_user_record(record_id)
    if not record:
        return jsonify({"error": "Email not found"}), 404

    new_id = get_delivery_service().resend(record, g.session.get_valid_credential())
    return jsonify({"success": True, "recordId": new_id})


@app.route('/api/emails/<record_id>/edit-resend', methods=['POST'])
@require_auth
def edit_and_resend_email(record_id):
    """Send an edited copy of an earlier email."""
    data = request.json or {}
    record = get_user_record(record_id)
    if not record:
        return jsonify({"error": "Email not found"}), 404

    new_id = get_delivery_service().resend(
        record,
        g.session.get_valid_credential(),
        subject=data.get('subject'),
        body=data.get('body'),
        to=(data.get('to') or '').strip() or None,
    )
    return jsonify({"success": True, "recordId": new_id})


@app.route('/api/emails/<record_id>/schedule', methods=['POST'])
@require_auth
def schedule_resend_email(record_id):
    data = request.json or {}
    record = get_user_record(record_id)
    if not record:
        return jsonify({"error": "Email not found"}), 404

    new_id = get_delivery_service().schedule_resend(record, parse_datetime(data.get('scheduledAt')))
    return jsonify({"success": True, "recordId": new_id})


@app.route('/api/emails/<record_id>/reminder', methods=['POST'])
@require_auth
def send_reminder_email(record_id):
    """Send a follow-up to an email that went out."""
    record = get_user_record(record_id)
    if not record:
        return jsonify({"error": "Email not found"}), 404

    new_id = get_delivery_service().send_reminder(record, g.session.get_valid_credential())
    return jsonify({"success": True, "recordId": new_id})


# ========================================
# Main Entry Point
# ========================================

def run(host: str, port: int, debug: bool) -> None:
    """Initialize the database and start the development server."""
    configure_logging()
    init_db()

    print("\n🎓 Professor Connect API Server")
    print("=" * 40)
    print(f"🌐 API running at: http://{host}:{port}")
    print(f"🔧 Debug mode: {'ON' if debug else 'OFF'}")
    print(f"🗄️  Database: {config.DATABASE_URL}")
    print(f"🔗 Backend: {config.API_BASE_URL}")
    print("=" * 40)

    for problem in config.validate():
        print(f"⚠️  {problem}")

    if debug:
        print("⚠️  WARNING: Running in debug mode. Do not use in production!\n")

    app.run(host=host, port=port, debug=debug)


if __name__ == '__main__':
    import argparse

    parser = argparse.ArgumentParser(description='Professor Connect API Server')
    parser.add_argument('--debug', action='store_true', help='Run in debug mode')
    parser.add_argument('--port', type=int, default=config.API_PORT, help='Port to run on')
    parser.add_argument('--host', default=config.API_HOST, help='Host to bind to')
    args = parser.parse_args()

    run(args.host, args.port, args.debug or config.FLASK_DEBUG)
