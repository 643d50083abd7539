"""XRPC client for fetching timelines and threads from Bluesky."""

import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_SERVICE = "https://bsky.social"
PUBLIC_SERVICE = "https://public.api.bsky.app"
USER_AGENT = "skyfeed/0.1"


class BlueskyAPIError(Exception):
    """An XRPC call returned an error response."""

    def __init__(self, status_code: int, error: str | None = None, message: str | None = None):
        self.status_code = status_code
        self.error = error
        self.message = message
        super().__init__(f"{status_code} {error or 'Error'}: {message or 'request failed'}")


class BlueskyClient:
    """
    Minimal async XRPC client.

    Anonymous reads go to the public AppView; once logged in, calls go to
    the user's service with a bearer token. Sessions are not refreshed.

    Usage:
        async with BlueskyClient() as client:
            await client.login(handle, app_password)
            feed = await client.get_timeline(limit=30)
    """

    def __init__(
        self,
        service: str = DEFAULT_SERVICE,
        public_service: str = PUBLIC_SERVICE,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.service = service.rstrip("/")
        self.public_service = public_service.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self.access_jwt: str | None = None
        self.did: str | None = None
        self.handle: str | None = None

    async def __aenter__(self) -> "BlueskyClient":
        self._http = httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"User-Agent": USER_AGENT},
        )
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    @property
    def is_authenticated(self) -> bool:
        return self.access_jwt is not None

    async def _call(
        self,
        method: str,
        nsid: str,
        params: dict | None = None,
        body: dict | None = None,
        base_url: str | None = None,
    ) -> dict:
        if self._http is None:
            raise RuntimeError("BlueskyClient must be used as an async context manager")

        headers = {}
        if base_url is None:
            base_url = self.service if self.is_authenticated else self.public_service
        if self.is_authenticated:
            headers["Authorization"] = f"Bearer {self.access_jwt}"

        logger.debug("%s %s %s", method, nsid, params or "")
        response = await self._http.request(
            method,
            f"{base_url}/xrpc/{nsid}",
            params=params,
            json=body,
            headers=headers,
        )

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            raise BlueskyAPIError(
                response.status_code,
                payload.get("error"),
                payload.get("message"),
            )

        return response.json()

    async def login(self, identifier: str, password: str) -> dict:
        """Create a session with a handle and app password."""
        session = await self._call(
            "POST",
            "com.atproto.server.createSession",
            body={"identifier": identifier, "password": password},
            base_url=self.service,
        )
        self.access_jwt = session.get("accessJwt")
        self.did = session.get("did")
        self.handle = session.get("handle")
        logger.info("Logged in as %s", self.handle)
        return session

    async def get_timeline(self, limit: int = 50, cursor: str | None = None) -> list[dict]:
        """Fetch the logged-in user's home timeline (newest first)."""
        params = {"limit": min(limit, 100)}
        if cursor:
            params["cursor"] = cursor
        data = await self._call("GET", "app.bsky.feed.getTimeline", params=params)
        return data.get("feed") or []

    async def get_author_feed(self, actor: str, limit: int = 50) -> list[dict]:
        """Fetch posts by a single account (newest first)."""
        data = await self._call(
            "GET",
            "app.bsky.feed.getAuthorFeed",
            params={"actor": actor, "limit": min(limit, 100)},
        )
        return data.get("feed") or []

    async def get_post_thread(
        self, uri: str, depth: int = 6, parent_height: int = 80
    ) -> dict | None:
        """
        Fetch the thread around a post.

        Returns the threadViewPost dict, or None when the post is gone.
        """
        try:
            data = await self._call(
                "GET",
                "app.bsky.feed.getPostThread",
                params={"uri": uri, "depth": depth, "parentHeight": parent_height},
            )
        except BlueskyAPIError as e:
            if e.error == "NotFound":
                return None
            raise
        return data.get("thread")
