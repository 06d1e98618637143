"""
log.py - Console logging for the EnclaveLink roles.

Lines look like `[ROLE] 1.23s - message`, with the time measured from the
start of the role. Secrets, channel keys and decrypted payloads are never
passed in here.
"""
import sys
import time

# Global timer for performance metrics
SCRIPT_START_TIME = time.time()

def reset_clock():
    global SCRIPT_START_TIME
    SCRIPT_START_TIME = time.time()

def log(role, msg):
    """Structured logging with timing information."""
    elapsed = time.time() - SCRIPT_START_TIME
    print(f"[{role}] {elapsed:.2f}s - {msg}", flush=True)

def log_err(role, msg):
    """Error logging to stderr."""
    elapsed = time.time() - SCRIPT_START_TIME
    print(f"[{role}] {elapsed:.2f}s - {msg}", file=sys.stderr, flush=True)
