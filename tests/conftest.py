"""
Shared test fixtures for templar tests.

This module provides common fixtures used across all test types:
- In-memory and YAML persistence backends
- Audit sinks that capture emitted events
- Ready-made version managers and stores
- A small template catalogue for resolution tests
"""

import pytest

# ============================================================================
# BACKEND FIXTURES
# ============================================================================


@pytest.fixture
def audit_sink():
    """In-memory audit sink capturing every emitted event."""
    from templar.versioning.audit import InMemoryAuditSink

    return InMemoryAuditSink()


@pytest.fixture
def memory_backend():
    """Persistence backend without disk I/O."""
    from templar.versioning.persistence import InMemoryPersistence

    return InMemoryPersistence()


@pytest.fixture
def data_dir(tmp_path):
    """Temporary data directory for YAML persistence."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def yaml_backend(data_dir):
    """YAML persistence backend in a temporary directory."""
    from templar.versioning.persistence import YamlPersistence

    return YamlPersistence(data_dir, lock_timeout=1.0)


# ============================================================================
# STORE AND MANAGER FIXTURES
# ============================================================================


@pytest.fixture
def version_store(memory_backend, audit_sink):
    """VersionStore over the in-memory backend."""
    from templar.versioning.store import VersionStore

    return VersionStore(memory_backend, audit_sink)


@pytest.fixture
def migration_store(memory_backend, audit_sink):
    """MigrationStore over the in-memory backend."""
    from templar.versioning.store import MigrationStore

    return MigrationStore(memory_backend, audit_sink)


@pytest.fixture
def manager(memory_backend, audit_sink):
    """TemplateVersionManager over the in-memory backend."""
    from templar.version_manager import TemplateVersionManager

    return TemplateVersionManager(memory_backend, audit_sink)


@pytest.fixture
def make_record():
    """Factory for VersionRecord objects with sensible defaults."""
    from templar.versioning.models import VersionRecord
    from templar.versioning.semver import parse_version

    def _make(template_id, version, **kwargs):
        kwargs.setdefault("author", "tester")
        kwargs.setdefault("prerelease", parse_version(version).is_prerelease)
        return VersionRecord(version=version, template_id=template_id, **kwargs)

    return _make


@pytest.fixture
def dep():
    """Factory for DependencyDeclaration objects."""
    from templar.versioning.models import DependencyDeclaration

    def _dep(dependency_id, constraint, **kwargs):
        return DependencyDeclaration(dependency_id, constraint, **kwargs)

    return _dep


@pytest.fixture
def conflict_catalogue(manager, dep):
    """Templates where A needs B@^1 and C needs B@^2; app depends on A and C."""
    manager.create_version("b", "1.4.0", author="alice")
    manager.create_version("b", "2.1.0", author="alice")
    manager.create_version("a", "1.0.0", author="alice", dependencies=[dep("b", "^1.0.0")])
    manager.create_version("c", "1.0.0", author="alice", dependencies=[dep("b", "^2.0.0")])
    manager.create_version(
        "app", "1.0.0", author="alice", dependencies=[dep("a", "^1.0.0"), dep("c", "^1.0.0")]
    )
    return manager
