from tender_criteria.repositories.criteria import InMemoryCriteriaRepository, PostgresCriteriaRepository
from tender_criteria.repositories.dependencies import InMemoryDependenciesRepository, PostgresDependenciesRepository
from tender_criteria.repositories.evidence import InMemoryEvidenceRepository, PostgresEvidenceRepository
from tender_criteria.repositories.sources import InMemorySourcesRepository, PostgresSourcesRepository

__all__ = [
    "InMemoryCriteriaRepository",
    "PostgresCriteriaRepository",
    "InMemoryDependenciesRepository",
    "PostgresDependenciesRepository",
    "InMemoryEvidenceRepository",
    "PostgresEvidenceRepository",
    "InMemorySourcesRepository",
    "PostgresSourcesRepository",
]
