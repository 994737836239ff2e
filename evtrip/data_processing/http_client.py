import json
import logging
import os
import threading
import time
from typing import Any, Dict, Optional

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)
load_dotenv()

USER_AGENT = 'EV-Trip-Planner/1.0'


def require_env_key(env_var: str, service: str, signup_url: str) -> str:
    """API key from the environment (or ``.env``); ValueError with a pointer if unset."""
    api_key = os.getenv(env_var)
    if not api_key:
        raise ValueError(
            f"{service} API key not found. Set the {env_var} environment variable "
            f"(a .env file works too).\nFree keys: {signup_url}"
        )
    return api_key


class RateLimitedClient:
    """
    Shared plumbing for the provider clients: one ``requests.Session`` and a
    minimum spacing between calls, kept across threads. JSON responses come
    back as ``None`` (logged) instead of raising.
    """

    def __init__(self, api_key: str, settings: Dict[str, Any], session: requests.Session = None):
        self.api_key = api_key
        self.base_url = settings['base_url']
        self.timeout = settings['timeout_seconds']
        self.min_request_interval = settings['rate_limit_seconds']
        self.last_request_time = 0.0
        self._turn_lock = threading.Lock()

        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': USER_AGENT, 'Accept': 'application/json'})

    def _wait_turn(self):
        # Held while sleeping so concurrent callers queue for their own slot
        with self._turn_lock:
            elapsed = time.time() - self.last_request_time
            if elapsed < self.min_request_interval:
                time.sleep(self.min_request_interval - elapsed)
            self.last_request_time = time.time()

    def _fetch_json(self, method: str, path: str, params: Dict = None, **kwargs) -> Optional[Any]:
        self._wait_turn()
        try:
            response = self.session.request(method, f"{self.base_url}{path}",
                                            params=params, timeout=self.timeout, **kwargs)
            if response.status_code != 200:
                logger.error(f"{type(self).__name__} HTTP {response.status_code}: {response.text[:200]}")
                return None
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"{type(self).__name__} request to {path} failed: {e}")
        except json.JSONDecodeError as e:
            logger.error(f"{type(self).__name__} returned invalid JSON from {path}: {e}")
        return None
