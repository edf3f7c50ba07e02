"""
Redis metric source backed by redis.asyncio.

RedisAdapter implements MetricSourceProtocol. It only issues read-only
commands: INFO, SCAN, TYPE, MEMORY USAGE, TTL, OBJECT ENCODING,
CLIENT LIST, CONFIG GET, SLOWLOG GET/LEN and PING.

open_connection() builds the client from a redis:// or rediss:// URL and
classifies connection failures; connect_with_retry() re-prompts for
credentials on authentication failures.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit

import redis.asyncio as redis
from redis.exceptions import AuthenticationError, RedisError, ResponseError

from redis_doctor.config import Settings
from redis_doctor.exceptions import (
    AuthenticationFailedError,
    ConnectionFailedError,
    UnsupportedCommandError,
)
from redis_doctor.types import KeyMetadata

logger = logging.getLogger(__name__)

DEFAULT_PORT = 6379

# Server messages that mean "bad credentials" rather than "unreachable"
AUTH_ERROR_PATTERN = re.compile(
    r"WRONGPASS|NOAUTH|invalid password|authentication failed|invalid username-password",
    re.IGNORECASE,
)

# Commands issued per key in a metadata pipeline
COMMANDS_PER_KEY = 4


@dataclass
class Credentials:
    """Credentials supplied interactively or from the URL."""

    username: str | None = None
    password: str | None = None


def _reply(value: Any, default: Any) -> Any:
    """Return a pipeline reply, or default for a missing or failed reply."""
    if value is None or isinstance(value, Exception):
        return default
    return value


@dataclass
class RedisAdapter:
    """
    Read-only Redis metric source.

    Attributes:
        redis: Pre-configured redis.asyncio.Redis client (decode_responses=True)
        address: Display address (host:port)

    Example:
        client = redis.Redis.from_url("redis://localhost:6379", decode_responses=True)
        adapter = RedisAdapter(redis=client, address="localhost:6379")
        memory = await adapter.get_info_section("memory")
    """

    redis: redis.Redis
    address: str

    async def get_info_section(self, section: str) -> dict[str, Any]:
        """
        Run INFO for one section.

        Raises:
            redis.RedisError: On Redis errors.
        """
        return await self.redis.info(section)

    async def scan_cursor(self, cursor: int, page_size: int) -> tuple[int, list[str]]:
        """
        Run one SCAN step.

        Uses SCAN rather than KEYS so each call does bounded work and
        never blocks the server.
        """
        next_cursor, keys = await self.redis.scan(cursor=cursor, count=page_size)
        return int(next_cursor), list(keys)

    async def pipeline_fetch(self, keys: list[str]) -> list[KeyMetadata]:
        """
        Fetch per-key metadata in one non-transactional pipeline.

        Replies are read positionally (4 per key, in submission order).
        Individual command errors are returned in place rather than raised
        and fall back to KeyMetadata defaults.
        """
        if not keys:
            return []

        async with self.redis.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.type(key)
                pipe.memory_usage(key, samples=0)
                pipe.ttl(key)
                pipe.object("encoding", key)
            replies = await pipe.execute(raise_on_error=False)

        results: list[KeyMetadata] = []
        for index in range(len(keys)):
            base = index * COMMANDS_PER_KEY
            chunk = list(replies[base : base + COMMANDS_PER_KEY])
            chunk += [None] * (COMMANDS_PER_KEY - len(chunk))
            key_type, size, ttl, encoding = chunk
            results.append(
                KeyMetadata(
                    type=str(_reply(key_type, "unknown")),
                    size_bytes=int(_reply(size, 0)),
                    ttl_seconds=_reply(ttl, None),
                    encoding=str(_reply(encoding, "unknown")),
                )
            )
        return results

    async def list_clients(self) -> list[dict[str, str]]:
        """
        Run CLIENT LIST.

        Raises:
            UnsupportedCommandError: If CLIENT is restricted.
        """
        try:
            clients = await self.redis.client_list()
        except ResponseError as e:
            raise UnsupportedCommandError("CLIENT LIST", str(e)) from e
        return [{str(k): str(v) for k, v in c.items()} for c in clients]

    async def get_config_value(self, name: str) -> str | None:
        """
        Run CONFIG GET for one parameter.

        Raises:
            UnsupportedCommandError: If CONFIG is restricted.
        """
        try:
            values = await self.redis.config_get(name)
        except ResponseError as e:
            raise UnsupportedCommandError("CONFIG GET", str(e)) from e
        value = values.get(name)
        return None if value is None else str(value)

    async def get_slow_entries(self, limit: int) -> list[dict[str, Any]]:
        """
        Run SLOWLOG GET.

        Returns:
            Entries with id, start_time, duration (microseconds) and command.

        Raises:
            UnsupportedCommandError: If SLOWLOG is restricted.
        """
        try:
            return list(await self.redis.slowlog_get(limit))
        except ResponseError as e:
            raise UnsupportedCommandError("SLOWLOG GET", str(e)) from e

    async def get_slow_count(self) -> int:
        """
        Run SLOWLOG LEN.

        Raises:
            UnsupportedCommandError: If SLOWLOG is restricted.
        """
        try:
            return int(await self.redis.slowlog_len())
        except ResponseError as e:
            raise UnsupportedCommandError("SLOWLOG LEN", str(e)) from e

    async def ping(self) -> None:
        await self.redis.ping()

    async def reconnect(self) -> None:
        """Drop pooled connections and re-establish with PING."""
        logger.info("Reconnecting to %s", self.address)
        await self.redis.connection_pool.disconnect()
        try:
            await self.redis.ping()
        except RedisError as e:
            raise ConnectionFailedError(self.address, str(e)) from e

    async def close(self) -> None:
        await self.redis.aclose(close_connection_pool=True)


# =============================================================================
# Connection setup
# =============================================================================


@dataclass(frozen=True)
class ConnectionTarget:
    """
    Parsed connection URL.

    Credentials are split out of the URL so prompted values are not
    overridden by URL userinfo.

    Attributes:
        url: URL without userinfo or client-only query parameters
        address: Display address (host:port)
        credentials: Userinfo from the URL
        use_tls: True for rediss://
        verify_tls: False when ?rejectUnauthorized=false was given
    """

    url: str
    address: str
    credentials: Credentials
    use_tls: bool
    verify_tls: bool

    @property
    def display_url(self) -> str:
        scheme = "rediss" if self.use_tls else "redis"
        return f"{scheme}://{self.address}"


def parse_target(url: str) -> ConnectionTarget:
    """
    Split a redis:// or rediss:// URL into connection parts.

    Args:
        url: Connection URL, optionally with user:password@ and /db

    Returns:
        ConnectionTarget
    """
    parts = urlsplit(url)
    userinfo, _, hostport = parts.netloc.rpartition("@")
    username, _, password = userinfo.partition(":")
    if parts.port is None:
        hostport = f"{hostport}:{DEFAULT_PORT}"

    query = parse_qsl(parts.query)
    verify_tls = all(not (k == "rejectUnauthorized" and v == "false") for k, v in query)
    query = [(k, v) for k, v in query if k != "rejectUnauthorized"]

    clean_url = urlunsplit(
        (parts.scheme, hostport, parts.path, urlencode(query), parts.fragment)
    )
    return ConnectionTarget(
        url=clean_url,
        address=hostport,
        credentials=Credentials(
            username=unquote(username) or None,
            password=unquote(password) or None,
        ),
        use_tls=parts.scheme == "rediss",
        verify_tls=verify_tls,
    )


def is_auth_error(error: BaseException) -> bool:
    """True when an error means the server rejected the credentials."""
    return isinstance(error, AuthenticationError) or bool(
        AUTH_ERROR_PATTERN.search(str(error))
    )


async def open_connection(
    target: ConnectionTarget,
    credentials: Credentials,
    settings: Settings,
    insecure: bool = False,
) -> RedisAdapter:
    """
    Create a client and verify it with PING.

    Args:
        target: Parsed connection URL
        credentials: Credentials to use (override URL userinfo)
        settings: Timeouts
        insecure: Skip TLS certificate verification

    Returns:
        Connected RedisAdapter

    Raises:
        AuthenticationFailedError: Credentials rejected
        ConnectionFailedError: Any other connection failure
    """
    kwargs: dict[str, Any] = {
        "decode_responses": True,
        # RESP2: servers before 6.0 reject the HELLO 3 handshake
        "protocol": 2,
        "socket_timeout": settings.command_timeout,
        "socket_connect_timeout": settings.connect_timeout,
    }
    username = credentials.username or target.credentials.username
    password = credentials.password or target.credentials.password
    if username:
        kwargs["username"] = username
    if password:
        kwargs["password"] = password
    if target.use_tls and (insecure or not target.verify_tls):
        kwargs["ssl_cert_reqs"] = "none"

    # One connection per process; concurrent commands and pipelines queue for it
    pool = redis.BlockingConnectionPool.from_url(
        target.url, max_connections=1, timeout=None, **kwargs
    )
    client = redis.Redis(connection_pool=pool)
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        await client.aclose(close_connection_pool=True)
        if is_auth_error(e):
            raise AuthenticationFailedError(target.address, str(e)) from e
        raise ConnectionFailedError(target.address, str(e)) from e

    logger.debug("Connected to %s", target.address)
    return RedisAdapter(redis=client, address=target.address)


async def connect_with_retry(
    target: ConnectionTarget,
    credentials: Credentials,
    prompt_credentials: Callable[[], Awaitable[Credentials]],
    settings: Settings,
    insecure: bool = False,
    on_auth_failure: Callable[[AuthenticationFailedError], None] | None = None,
) -> RedisAdapter:
    """
    Connect, re-prompting for credentials after each authentication failure.

    Retries are unbounded; the user interrupts to give up. Any
    non-authentication failure propagates as ConnectionFailedError.

    Args:
        target: Parsed connection URL
        credentials: Initial credentials
        prompt_credentials: Async callable asking the user for new credentials
        settings: Timeouts
        insecure: Skip TLS certificate verification
        on_auth_failure: Optional callback to report each rejected attempt

    Returns:
        Connected RedisAdapter
    """
    while True:
        try:
            return await open_connection(target, credentials, settings, insecure)
        except AuthenticationFailedError as e:
            logger.warning("%s", e)
            if on_auth_failure is not None:
                on_auth_failure(e)
            credentials = await prompt_credentials()
