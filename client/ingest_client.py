# client/ingest_client.py
"""
Ingest Client - HTTP client for forwarding a collection payload to an
ingest endpoint.
"""

import logging
import time
from typing import Any, Dict, List

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger("pgcollector.client.ingest")


class IngestError(Exception):
    """The payload could not be delivered."""


class IngestClient:
    """
    Posts payload documents with a bearer token. Transport-level retries on
    5xx are handled by urllib3; timeouts and connection errors are retried
    here with a fixed delay schedule.
    """

    def __init__(self, url: str, token: str = None, timeout: int = 30, retry_delays: List[int] = None):
        self.url = url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.retry_delays = [2, 5, 10] if retry_delays is None else retry_delays

        # Create session with retry strategy
        self.session = requests.Session()
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["POST"]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST ``payload`` to the ingest URL.

        Returns:
            The decoded JSON response, or an empty dict for an empty body.

        Raises:
            IngestError: on a 4xx/5xx answer or when all attempts fail.
        """
        last_error = None
        for attempt in range(len(self.retry_delays) + 1):  # +1 for initial attempt
            try:
                logger.info("Posting payload to %s (attempt %d)", self.url, attempt + 1)
                start_time = time.time()
                response = self.session.post(
                    self.url,
                    json=payload,
                    headers=self._headers(),
                    timeout=self.timeout
                )
                elapsed = time.time() - start_time
                logger.info("Ingest response: %s (%.2fs)", response.status_code, elapsed)

                if 200 <= response.status_code < 300:
                    if not response.content:
                        return {}
                    try:
                        return response.json()
                    except ValueError:
                        # delivered; the endpoint acknowledged with a non-JSON body
                        return {"text": response.text}

                # 4xx/5xx; the adapter already retried the 5xx ones
                raise IngestError(f"ingest failed with status {response.status_code}: {response.text}")

            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                last_error = IngestError(f"unable to reach ingest endpoint: {e}")
                logger.warning("Ingest attempt %d failed: %s", attempt + 1, e)
                if attempt < len(self.retry_delays):
                    delay = self.retry_delays[attempt]
                    logger.info("Retrying in %s seconds...", delay)
                    time.sleep(delay)
                    continue

            except requests.exceptions.RetryError as e:
                raise IngestError(f"ingest endpoint unavailable after retries: {e}") from e

        raise last_error or IngestError("ingest failed after all retries")

    def close(self):
        self.session.close()
