"""
HTTP client for the remote keyword service.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from tagsync.constants import DEFAULT_KEYWORDS_PATH, USER_AGENT
from tagsync.keywords.errors import DecodeError, NetworkError
from tagsync.models import KeywordSet, User

logger = logging.getLogger(__name__)


class KeywordGateway:
    """Source of the authoritative keyword list for a signed-in user."""

    async def fetch_keywords(self, user: User) -> KeywordSet:
        raise NotImplementedError


def parse_keywords_payload(payload: Any) -> KeywordSet:
    """
    Convert a ``{"keywords": [...]}`` payload into a KeywordSet.

    A missing or null ``keywords`` field means the user has no remote keywords.
    Entries are normalized and de-duplicated in response order.
    """
    if not isinstance(payload, dict):
        raise DecodeError(
            f"Expected a JSON object, got {type(payload).__name__}"
        )

    keywords = payload.get("keywords")
    if keywords is None:
        return KeywordSet()

    if not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords):
        raise DecodeError("Field 'keywords' must be a list of strings")

    return KeywordSet(keywords)


class HttpKeywordGateway(KeywordGateway):
    """
    Fetches keywords with a single GET request per call.

    No retries are attempted here; a failed request surfaces as NetworkError.
    """

    def __init__(
        self,
        base_url: str,
        keywords_path: str = DEFAULT_KEYWORDS_PATH,
        timeout: float = 10.0,
        token: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.keywords_path = keywords_path
        self.timeout = timeout
        self.token = token
        self._session = session

    def build_url(self, user: User) -> str:
        path = self.keywords_path.format(user=user.id)
        return f"{self.base_url}/{path.lstrip('/')}"

    def build_headers(self) -> Dict[str, str]:
        headers = {
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def fetch_keywords(self, user: User) -> KeywordSet:
        url = self.build_url(user)
        logger.debug(f"Fetching keywords for {user.id} from {url}")

        if self._session is not None:
            return await self._fetch(self._session, url)

        async with aiohttp.ClientSession() as session:
            return await self._fetch(session, url)

    async def _fetch(self, session: aiohttp.ClientSession, url: str) -> KeywordSet:
        try:
            async with session.get(
                url,
                headers=self.build_headers(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status < 200 or response.status >= 300:
                    raise NetworkError(
                        f"Keyword request to {url} failed with status {response.status}",
                        status=response.status,
                    )
                body = await response.read()
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Keyword request to {url} timed out", e)
        except aiohttp.ClientError as e:
            raise NetworkError(f"Keyword request to {url} failed: {e}", e)

        try:
            payload = json.loads(body.decode("utf-8"))
        except ValueError as e:
            # UnicodeDecodeError is a ValueError too
            raise DecodeError(f"Keyword response from {url} is not valid JSON", e)

        keywords = parse_keywords_payload(payload)
        logger.debug(f"Received {len(keywords)} keywords from {url}")
        return keywords
