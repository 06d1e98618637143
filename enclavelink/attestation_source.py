"""
attestation_source.py - Retrieves raw attestation documents over HTTP.

The verifier never retries on its own; retrying a failed fetch with bounded
exponential backoff happens here, before any verification starts.
"""
import random
import time

import requests

from enclavelink.log import log, log_err
from enclavelink_work.lib.errors import AttestationFetchError


def fetch_attestation_document(endpoint, timeout=10.0, max_attempts=3,
                               initial_delay=0.25, max_delay=3.0, jitter=True, role="VER"):
    """GET `endpoint` and return the response body in full."""
    delay = initial_delay
    last_error = None

    log(role, f"FETCHING attestation document from {endpoint}")
    for attempt in range(1, max_attempts + 1):
        try:
            response = requests.get(endpoint, timeout=timeout)
            response.raise_for_status()
            log(role, f"Fetched attestation document ({len(response.content)} bytes).")
            return response.content
        except requests.exceptions.RequestException as e:
            last_error = e
            log_err(role, f"Attempt {attempt}/{max_attempts} failed ({e})")

        if attempt < max_attempts:
            # Exponential backoff with optional jitter
            time.sleep(delay + random.uniform(0, delay * 0.25) if jitter else delay)
            delay = min(delay * 2, max_delay)

    raise AttestationFetchError(
        f"could not retrieve attestation document from {endpoint}: {last_error}")
