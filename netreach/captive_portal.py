"""Captive portal detection over plain HTTP."""

import logging

import requests

from .config import DEFAULTS
from .models import CaptivePortalStatus

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5
DEFAULT_PORTAL_TIMEOUT_MS = 5000
USER_AGENT = "netreach/0.1"


def check_for_captive_portal(
    timeout_ms: int = DEFAULT_PORTAL_TIMEOUT_MS,
    url: str = DEFAULTS.captive_portal_url,
) -> CaptivePortalStatus:
    """Check whether HTTP traffic is being intercepted by a captive portal.

    Requests a plain HTTP page that never redirects on its own. When the
    response ends up at a different URL after following redirects, a portal
    is assumed and the final URL is reported.

    Any request failure (timeout, connection error, too many redirects)
    reports no portal.

    Args:
        timeout_ms: Request timeout.
        url: Probe URL, must be served over plain HTTP.

    Returns:
        CaptivePortalStatus with the redirect target when captive.
    """
    try:
        with requests.Session() as session:
            session.max_redirects = MAX_REDIRECTS
            response = session.get(
                url,
                timeout=timeout_ms / 1000,
                allow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
    except requests.RequestException as e:
        logger.debug("Captive portal probe to %s failed: %s", url, e)
        return CaptivePortalStatus(is_captive_portal=False)

    # URL as sent, after requests normalised it
    requested = response.history[0].url if response.history else response.request.url
    if response.url != requested:
        logger.info("Captive portal detected: %s redirected to %s", url, response.url)
        return CaptivePortalStatus(is_captive_portal=True, redirect_url=response.url)

    return CaptivePortalStatus(is_captive_portal=False)
