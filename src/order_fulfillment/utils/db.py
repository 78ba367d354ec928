"""Schema management for SQL-backed providers (sqlite, postgresql)."""

from itertools import chain

from protean.domain import Domain
from sqlalchemy import create_engine

_SQL_PROVIDERS = ("sqlite", "postgresql")


def _sql_providers(domain: Domain):
    return [p for p in domain.providers.values() if p.conn_info["provider"] in _SQL_PROVIDERS]


def _register_tables(domain: Domain, provider) -> None:
    # Building a DAO registers its model's table on the provider metadata
    records = chain(domain.registry.aggregates.values(), domain.registry.entities.values())
    for record in records:
        if record.cls.meta_.provider == provider.name:
            domain.repository_for(record.cls)._dao  # noqa: B018


def setup_db(domain: Domain) -> list[str]:
    """Create tables for the Order, its entities and the notification outbox.

    Returns the names of the providers touched; memory providers need no
    schema and are skipped.
    """
    with domain.domain_context():
        providers = _sql_providers(domain)
        for provider in providers:
            _register_tables(domain, provider)
            provider._metadata.create_all(create_engine(provider.conn_info["database_uri"]))
        return [p.name for p in providers]


def drop_db(domain: Domain) -> list[str]:
    with domain.domain_context():
        providers = _sql_providers(domain)
        for provider in providers:
            provider._metadata.drop_all(create_engine(provider.conn_info["database_uri"]))
        return [p.name for p in providers]
