"""
Mint a short-lived service token for the /events endpoint.

Usage:
    python scripts/issue_event_token.py [scope ...]

Defaults to the "events" and "reviews" scopes. Reads EVENTS_JWT_SECRET from .env.
"""
import os
import sys
import time

import jwt
from dotenv import load_dotenv

load_dotenv()

secret = os.getenv("EVENTS_JWT_SECRET")
if not secret:
    sys.exit("EVENTS_JWT_SECRET is not set")

now = int(time.time())
payload = {
    "iss": "review-app",
    "aud": "pr-review-server",
    "iat": now,
    "exp": now + 300,
    "scope": sys.argv[1:] or ["events", "reviews"],
}

print(jwt.encode(payload, secret, algorithm=os.getenv("JWT_ALGO", "HS256")))
