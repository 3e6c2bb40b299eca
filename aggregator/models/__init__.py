from aggregator.models.domain import Domain  # noqa: F401
from aggregator.models.stats import DomainTables, domain_tables  # noqa: F401
