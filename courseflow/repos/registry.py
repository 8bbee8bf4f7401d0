"""Bundles the four repos one unit of work needs.

``memory_repos`` wraps the process-wide in-memory store; ``pg_repos``
wraps one AsyncSession so every repo shares its transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from courseflow.repos.attempt_repo import AttemptRepo, InMemoryAttemptRepo
from courseflow.repos.certificate_repo import CertificateRepo, InMemoryCertificateRepo
from courseflow.repos.content_repo import ContentRepo, InMemoryContentRepo
from courseflow.repos.memory_store import STORE, InMemoryStore
from courseflow.repos.pg_attempt_repo import PgAttemptRepo
from courseflow.repos.pg_certificate_repo import PgCertificateRepo
from courseflow.repos.pg_content_repo import PgContentRepo
from courseflow.repos.pg_progress_repo import PgProgressRepo
from courseflow.repos.progress_repo import InMemoryProgressRepo, ProgressRepo


@dataclass(frozen=True, slots=True)
class Repos:
    content: ContentRepo
    progress: ProgressRepo
    attempts: AttemptRepo
    certificates: CertificateRepo


def memory_repos(store: InMemoryStore = STORE) -> Repos:
    return Repos(
        content=InMemoryContentRepo(store),
        progress=InMemoryProgressRepo(store),
        attempts=InMemoryAttemptRepo(store),
        certificates=InMemoryCertificateRepo(store),
    )


def pg_repos(session: AsyncSession) -> Repos:
    return Repos(
        content=PgContentRepo(session),
        progress=PgProgressRepo(session),
        attempts=PgAttemptRepo(session),
        certificates=PgCertificateRepo(session),
    )
