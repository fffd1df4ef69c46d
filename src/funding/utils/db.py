from protean.domain import Domain
from sqlalchemy import create_engine

_RELATIONAL = ("sqlite", "postgresql")


def _relational_providers(domain: Domain):
    for _, provider in domain.providers.items():
        if provider.conn_info["provider"] in _RELATIONAL:
            yield provider


def setup_db(domain: Domain) -> list[str]:
    """Create tables for every aggregate stored in a relational provider.

    Returns the names of the providers that were set up; memory providers need
    no schema and are skipped.
    """
    prepared = []
    with domain.domain_context():
        for provider in _relational_providers(domain):
            engine = create_engine(provider.conn_info["database_uri"])

            # Touching the DAO registers the aggregate's table with the provider metadata
            for _, aggregate_record in domain.registry.aggregates.items():
                if aggregate_record.cls.meta_.provider == provider.name:
                    domain.repository_for(aggregate_record.cls)._dao  # noqa: B018

            if hasattr(domain, "_outbox_repos") and provider.name in domain._outbox_repos:
                domain._outbox_repos[provider.name]._dao  # noqa: B018

            provider._metadata.create_all(engine)
            prepared.append(provider.name)
    return prepared


def drop_db(domain: Domain) -> list[str]:
    dropped = []
    with domain.domain_context():
        for provider in _relational_providers(domain):
            engine = create_engine(provider.conn_info["database_uri"])
            provider._metadata.drop_all(engine)
            dropped.append(provider.name)
    return dropped
