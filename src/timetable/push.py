"""Client for the push subscription server.

The server hands out its VAPID public key and stores browser push
subscriptions together with the profile they belong to, so it can later
notify a whole degree/year/batch at once.
"""

import json
from pathlib import Path

import requests

from src.timetable.errors import PushRegistrationError
from src.timetable.logging import get_logger
from src.timetable.models import Profile

logger = get_logger(__name__)


def _base(server_url: str) -> str:
    return server_url.rstrip("/")


def get_vapid_public_key(server_url: str, http=requests, timeout: float = 10.0) -> str:
    """Fetch the server's VAPID public key.

    Raises:
        PushRegistrationError: If the server is unreachable or has no key.
    """
    url = f"{_base(server_url)}/vapidPublicKey"
    try:
        resp = http.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise PushRegistrationError(f"Could not reach push server: {e}") from e
    if resp.status_code != 200:
        raise PushRegistrationError(f"Failed to get VAPID key: HTTP {resp.status_code}")
    try:
        return resp.json()["publicKey"]
    except (ValueError, KeyError, TypeError) as e:
        raise PushRegistrationError("Push server returned no publicKey") from e


def subscribe(
    server_url: str,
    subscription: dict,
    profile: Profile,
    http=requests,
    timeout: float = 10.0,
) -> dict:
    """Register a push subscription for a profile.

    Args:
        server_url: Push server base URL, e.g. http://localhost:3000.
        subscription: Browser PushSubscription as JSON (endpoint + keys).
        profile: Cohort the subscription should receive notices for.

    Returns:
        The server's JSON response.

    Raises:
        PushRegistrationError: If the server rejects or fails the request.
    """
    url = f"{_base(server_url)}/subscribe"
    body = {
        "subscription": subscription,
        "profile": profile.model_dump(exclude_none=True),
    }
    try:
        resp = http.post(url, json=body, timeout=timeout)
    except requests.RequestException as e:
        raise PushRegistrationError(f"Could not reach push server: {e}") from e
    if not resp.ok:
        raise PushRegistrationError(
            f"Failed to register subscription on server: HTTP {resp.status_code}"
        )
    logger.info("push_subscribed", profile=profile.storage_key)
    try:
        return resp.json()
    except ValueError:
        return {}


def load_subscription(path: str | Path) -> dict:
    """Read a browser PushSubscription saved as JSON (endpoint + keys).

    Raises:
        PushRegistrationError: If the file is unreadable or has no endpoint.
    """
    try:
        with open(path, encoding="utf-8") as f:
            subscription = json.load(f)
    except (OSError, ValueError) as e:
        raise PushRegistrationError(f"Could not read subscription file {path}: {e}") from e
    if not isinstance(subscription, dict) or not subscription.get("endpoint"):
        raise PushRegistrationError(f"Subscription file {path} has no endpoint")
    return subscription
