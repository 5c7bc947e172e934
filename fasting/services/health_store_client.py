"""
Health store client for two-way fasting sync.

Reads completed fasts recorded by the health store and writes fasts that were
finished in this app. Everything it returns is tagged ExternalSync and goes
through FastingController.merge_external, never straight into history.
"""
import logging
import os
from datetime import datetime
from typing import Dict, List, Optional

import requests
from dotenv import load_dotenv

from fasting.records import SessionRecord, Source

load_dotenv()

logger = logging.getLogger(__name__)


class HealthStoreBridge:
    """Interface for anything fasts can be imported from or pushed to."""

    def fetch_external_sessions(self, since: datetime) -> List[SessionRecord]:
        raise NotImplementedError

    def push_session(self, record: SessionRecord) -> None:
        raise NotImplementedError


class HealthStoreClient(HealthStoreBridge):
    """Client for a health store's fasting-session REST API."""

    SESSIONS_ENDPOINT = '/fasting-sessions'
    TIMEOUT = 30

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None):
        self.base_url = (base_url or os.getenv('HEALTH_STORE_URL') or '').rstrip('/')
        self.token = token or os.getenv('HEALTH_STORE_TOKEN')

        if not self.base_url or not self.token:
            raise ValueError(
                "HEALTH_STORE_URL and HEALTH_STORE_TOKEN must be set in environment variables"
            )

    def _make_authenticated_request(
        self,
        endpoint: str,
        method: str = 'GET',
        params: Optional[Dict] = None,
        json: Optional[Dict] = None
    ) -> Dict:
        """
        Make an authenticated request to the health store.

        Args:
            endpoint: API endpoint (e.g., '/fasting-sessions')
            method: HTTP method (default: GET)
            params: Query parameters
            json: JSON body for writes

        Returns:
            Response JSON data
        """
        headers = {
            'Authorization': f'Bearer {self.token}',
        }

        url = f"{self.base_url}{endpoint}"
        response = requests.request(method, url, headers=headers, params=params, json=json, timeout=self.TIMEOUT)
        response.raise_for_status()

        if response.status_code == 204:
            return {}
        return response.json()

    def get_sessions(self, since: datetime, next_token: Optional[str] = None) -> Dict:
        """
        Fetch one page of fasting sessions that started at or after `since`.

        Returns:
            Dictionary containing 'records' and an optional 'next_token'
        """
        params = {'since': since.isoformat()}
        if next_token:
            params['next_token'] = next_token
        return self._make_authenticated_request(self.SESSIONS_ENDPOINT, params=params)

    def get_all_sessions(self, since: datetime) -> List[Dict]:
        """Fetch every page of fasting sessions since `since`."""
        all_sessions = []
        next_token = None

        while True:
            response = self.get_sessions(since, next_token=next_token)
            all_sessions.extend(response.get('records', []))

            next_token = response.get('next_token')
            if not next_token:
                break

        return all_sessions

    def fetch_external_sessions(self, since: datetime) -> List[SessionRecord]:
        """
        Completed fasts from the health store as ExternalSync records.
        Entries that cannot be parsed or are still running are skipped.
        """
        records = []
        for payload in self.get_all_sessions(since):
            try:
                record = SessionRecord.from_dict(payload, source=Source.EXTERNAL_SYNC)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning('Skipping malformed health store fast %r: %s', payload.get('id'), e)
                continue
            if record.is_open:
                logger.info('Skipping health store fast %s - still in progress', record.id)
                continue
            records.append(record)
        return records

    def push_session(self, record: SessionRecord) -> None:
        """Write a completed fast to the health store."""
        if record.is_open:
            raise ValueError('Only completed fasts can be pushed to the health store')
        self._make_authenticated_request(self.SESSIONS_ENDPOINT, method='POST', json=record.to_dict())
        logger.info('Pushed fast %s to the health store', record.id)


def connect_push(controller, bridge: HealthStoreBridge):
    """
    Push every fast the controller stops to `bridge`.

    Push failures are logged; the fast stays stopped locally either way.
    Returns the hook so callers can keep a reference to it.
    """
    def push(record):
        try:
            bridge.push_session(record)
        except (requests.exceptions.RequestException, ValueError):
            logger.exception('Could not push fast %s to the health store', record.id)

    controller.on_session_closed(push)
    return push
