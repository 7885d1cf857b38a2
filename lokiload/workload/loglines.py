"""
Synthetic log line formats.

Lines are rendered from a fixed vocabulary of fake hosts, users, URIs and
phrases. The vocabulary is produced once by a seeded Faker instance and is
read-only afterwards; per-line randomness comes from the caller's
random.Random so that each virtual user keeps its own random state.
"""

import json
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import quote_plus

from faker import Faker

SUPPORTED_FORMATS: tuple[str, ...] = (
    "apache_common",
    "apache_combined",
    "apache_error",
    "rfc3164",
    "rfc5424",
    "common_log",
    "json",
    "logfmt",
)

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD")
HTTP_VERSIONS = ("HTTP/1.0", "HTTP/1.1", "HTTP/2.0")
HTTP_STATUS_CODES = (200, 200, 200, 201, 204, 301, 304, 400, 403, 404, 500, 503)
APACHE_LOG_LEVELS = ("emerg", "alert", "crit", "error", "warn", "notice", "info", "debug")

APACHE_TIME = "%d/%b/%Y:%H:%M:%S %z"
APACHE_ERROR_TIME = "%a %b %d %H:%M:%S %Y"
RFC3164_TIME = "%b %d %H:%M:%S"


def _ascii(value: str) -> str:
    return value.encode("ascii", "ignore").decode("ascii")


@dataclass(frozen=True)
class LogVocabulary:
    """Pools of fake values that log lines are assembled from."""

    ipv4: tuple[str, ...]
    users: tuple[str, ...]
    uris: tuple[str, ...]
    urls: tuple[str, ...]
    user_agents: tuple[str, ...]
    domains: tuple[str, ...]
    words: tuple[str, ...]
    phrases: tuple[str, ...]

    @classmethod
    def build(cls, seed: int = 12345, size: int = 256) -> "LogVocabulary":
        """Generate a vocabulary with a seeded Faker.

        Args:
            seed: Faker seed, the same seed yields the same vocabulary
            size: Number of values per pool

        Returns:
            LogVocabulary with ASCII-only values
        """
        fake = Faker("en_US")
        fake.seed_instance(seed)

        def pool(factory: Callable[[], str]) -> tuple[str, ...]:
            return tuple(_ascii(factory()) for _ in range(size))

        def uri() -> str:
            parts = [quote_plus(fake.bs()) for _ in range(fake.random_int(1, 4))]
            return ("/" + "/".join(parts)).lower()

        return cls(
            ipv4=pool(fake.ipv4),
            users=pool(lambda: fake.user_name().lower()),
            uris=pool(uri),
            urls=pool(fake.url),
            user_agents=pool(fake.user_agent),
            domains=pool(fake.domain_name),
            words=pool(fake.word),
            phrases=pool(fake.catch_phrase),
        )


class LogLineFactory:
    """
    Render synthetic log lines in the supported formats.

    Example:
        >>> factory = LogLineFactory(random.Random(1), LogVocabulary.build(size=8))
        >>> line = factory.line("json", 1_700_000_000_000_000_000)
    """

    def __init__(self, rng: random.Random, vocabulary: Optional[LogVocabulary] = None):
        self.rng = rng
        self.vocabulary = vocabulary or LogVocabulary.build()
        self._renderers: dict[str, Callable[[datetime], str]] = {
            "apache_common": self.apache_common,
            "apache_combined": self.apache_combined,
            "apache_error": self.apache_error,
            "rfc3164": self.rfc3164,
            "rfc5424": self.rfc5424,
            "common_log": self.common_log,
            "json": self.json_line,
            "logfmt": self.logfmt,
        }

    def line(self, log_format: str, timestamp_ns: int) -> str:
        """Render one line.

        Args:
            log_format: One of SUPPORTED_FORMATS
            timestamp_ns: Line timestamp in Unix nanoseconds

        Returns:
            The rendered line

        Raises:
            ValueError: If the format is not supported
        """
        try:
            renderer = self._renderers[log_format]
        except KeyError:
            raise ValueError(
                f"Unsupported log format '{log_format}'; supported: {', '.join(SUPPORTED_FORMATS)}"
            ) from None
        ts = datetime.fromtimestamp(timestamp_ns / 1e9, tz=timezone.utc)
        return renderer(ts)

    # Field helpers

    def _pick(self, pool: tuple):
        return pool[self.rng.randrange(len(pool))]

    def _auth_user(self) -> str:
        return "-" if self.rng.random() < 0.5 else self._pick(self.vocabulary.users)

    def _status(self) -> int:
        return self._pick(HTTP_STATUS_CODES)

    # Formats

    def apache_common(self, ts: datetime) -> str:
        return (
            f"{self._pick(self.vocabulary.ipv4)} - {self._auth_user()} "
            f"[{ts.strftime(APACHE_TIME)}] "
            f"\"{self._pick(HTTP_METHODS)} {self._pick(self.vocabulary.uris)} {self._pick(HTTP_VERSIONS)}\" "
            f"{self._status()} {self.rng.randint(0, 30000)}"
        )

    def apache_combined(self, ts: datetime) -> str:
        return (
            f"{self._pick(self.vocabulary.ipv4)} - {self._auth_user()} "
            f"[{ts.strftime(APACHE_TIME)}] "
            f"\"{self._pick(HTTP_METHODS)} {self._pick(self.vocabulary.uris)} {self._pick(HTTP_VERSIONS)}\" "
            f"{self._status()} {self.rng.randint(30, 100000)} "
            f"\"{self._pick(self.vocabulary.urls)}\" \"{self._pick(self.vocabulary.user_agents)}\""
        )

    def apache_error(self, ts: datetime) -> str:
        return (
            f"[{ts.strftime(APACHE_ERROR_TIME)}] "
            f"[{self._pick(self.vocabulary.words)}:{self._pick(APACHE_LOG_LEVELS)}] "
            f"[pid {self.rng.randint(1, 10000)}:tid {self.rng.randint(1, 10000)}] "
            f"[client {self._pick(self.vocabulary.ipv4)}:{self.rng.randint(1, 65535)}] "
            f"{self._pick(self.vocabulary.phrases)}"
        )

    def rfc3164(self, ts: datetime) -> str:
        return (
            f"<{self.rng.randint(0, 191)}>{ts.strftime(RFC3164_TIME)} "
            f"{self._pick(self.vocabulary.users)} {self._pick(self.vocabulary.words)}"
            f"[{self.rng.randint(1, 10000)}]: {self._pick(self.vocabulary.phrases)}"
        )

    def rfc5424(self, ts: datetime) -> str:
        return (
            f"<{self.rng.randint(0, 191)}>{self.rng.randint(1, 3)} "
            f"{ts.isoformat(timespec='milliseconds')} {self._pick(self.vocabulary.domains)} "
            f"{self._pick(self.vocabulary.words)} {self.rng.randint(1, 10000)} "
            f"ID{self.rng.randint(1, 1000)} - {self._pick(self.vocabulary.phrases)}"
        )

    def common_log(self, ts: datetime) -> str:
        return (
            f"{self._pick(self.vocabulary.ipv4)} - {self._auth_user()} "
            f"[{ts.strftime(APACHE_TIME)}] "
            f"\"{self._pick(HTTP_METHODS)} {self._pick(self.vocabulary.uris)} {self._pick(HTTP_VERSIONS)}\" "
            f"{self._status()} {self.rng.randint(0, 30000)}"
        )

    def json_line(self, ts: datetime) -> str:
        record = {
            "host": self._pick(self.vocabulary.ipv4),
            "user-identifier": self._auth_user(),
            "datetime": ts.strftime(APACHE_TIME),
            "method": self._pick(HTTP_METHODS),
            "request": self._pick(self.vocabulary.uris),
            "protocol": self._pick(HTTP_VERSIONS),
            "status": self._status(),
            "bytes": self.rng.randint(0, 30000),
            "referer": self._pick(self.vocabulary.urls),
        }
        return json.dumps(record)

    def logfmt(self, ts: datetime) -> str:
        return (
            f"host=\"{self._pick(self.vocabulary.ipv4)}\" user={self._auth_user()} "
            f"timestamp={ts.isoformat(timespec='milliseconds')} method={self._pick(HTTP_METHODS)} "
            f"request=\"{self._pick(self.vocabulary.uris)}\" protocol={self._pick(HTTP_VERSIONS)} "
            f"status={self._status()} bytes={self.rng.randint(0, 30000)} "
            f"referer=\"{self._pick(self.vocabulary.urls)}\""
        )
