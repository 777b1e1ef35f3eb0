import logging
from typing import Any, Iterator, Optional, Sequence

from cassandra import InvalidRequest
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import Cluster, Session
from cassandra.query import SimpleStatement, dict_factory

from cqlmodel.exceptions import UndefinedTableError

logger = logging.getLogger(__name__)

UNDEFINED_TABLE_MARKERS = ("unconfigured table", "unconfigured columnfamily")

DEFAULT_FETCH_SIZE = 5000


class CassandraClient:
    """Thin wrapper around cassandra-driver for statement execution.

    Rows come back as dicts. Statements with bound parameters are prepared
    unless ``prepare=False`` is passed.
    """

    def __init__(
        self,
        contact_points: Optional[Sequence[str]] = None,
        port: int = 9042,
        keyspace: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> None:
        self._contact_points = list(contact_points or ["127.0.0.1"])
        self._port = port
        self._keyspace = keyspace
        self._username = username
        self._password = password
        self._cluster: Cluster | None = None
        self._session: Session | None = None

    def connect(self) -> None:
        """Open a session on the configured keyspace. Must be called before execute."""
        if self._session is not None:
            raise RuntimeError("Already connected. Call close() before reconnecting.")

        auth_provider = None
        if self._username:
            auth_provider = PlainTextAuthProvider(
                username=self._username, password=self._password
            )

        self._cluster = Cluster(
            contact_points=self._contact_points,
            port=self._port,
            auth_provider=auth_provider,
        )
        self._session = self._cluster.connect(self._keyspace)
        self._session.row_factory = dict_factory

    def execute(
        self,
        statement: str,
        params: Optional[Sequence[Any]] = None,
        prepare: bool = True,
        **options: Any,
    ) -> list[dict[str, Any]]:
        session = self._require_session()

        logger.debug(f"Executing: {statement} {list(params or [])}")
        try:
            if params and prepare:
                prepared = session.prepare(statement)
                result = session.execute(prepared, list(params), **options)
            elif params:
                result = session.execute(statement, list(params), **options)
            else:
                result = session.execute(statement, **options)
        except InvalidRequest as e:
            if _is_undefined_table(e):
                raise UndefinedTableError(str(e)) from e
            raise
        return list(result or [])

    def stream(
        self,
        statement: str,
        params: Optional[Sequence[Any]] = None,
        fetch_size: int = DEFAULT_FETCH_SIZE,
        **options: Any,
    ) -> Iterator[dict[str, Any]]:
        """Yield rows one at a time, fetching ``fetch_size`` rows per page.

        The driver requests the next page once iteration reaches the end of
        the current one, so the full result is never held in memory.
        """
        session = self._require_session()

        logger.debug(f"Streaming ({fetch_size} rows per page): {statement} {list(params or [])}")
        if params:
            query = session.prepare(statement).bind(list(params))
            query.fetch_size = fetch_size
        else:
            query = SimpleStatement(statement, fetch_size=fetch_size)
        try:
            result = session.execute(query, **options)
        except InvalidRequest as e:
            if _is_undefined_table(e):
                raise UndefinedTableError(str(e)) from e
            raise
        yield from result

    def _require_session(self) -> Session:
        if self._session is None:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._session

    def close(self) -> None:
        if self._cluster is not None:
            try:
                self._cluster.shutdown()
            finally:
                self._cluster = None
                self._session = None

    def __enter__(self) -> "CassandraClient":
        self.connect()
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()


def _is_undefined_table(error: InvalidRequest) -> bool:
    return any(marker in str(error).lower() for marker in UNDEFINED_TABLE_MARKERS)
