"""Cloudflare Turnstile verification for the public lead form.

When TURNSTILE_SECRET_KEY is unset (local dev, tests) verification is
skipped and every submission passes.
"""

import logging

import requests
from flask import current_app

logger = logging.getLogger(__name__)

VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"


def is_enabled():
    return bool(current_app.config.get("TURNSTILE_SECRET_KEY"))


def verify(token, remote_ip=None):
    """Return True if the Turnstile token is valid (or verification is off)."""
    secret = current_app.config.get("TURNSTILE_SECRET_KEY")
    if not secret:
        return True
    if not token:
        return False

    payload = {"secret": secret, "response": token}
    if remote_ip:
        payload["remoteip"] = remote_ip

    try:
        resp = requests.post(VERIFY_URL, data=payload, timeout=10)
        resp.raise_for_status()
        result = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.error(f"Turnstile verification request failed: {e}")
        return False

    if not result.get("success"):
        logger.warning(f"Turnstile rejected submission: {result.get('error-codes')}")
        return False
    return True
